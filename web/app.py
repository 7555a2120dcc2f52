"""h2operator: SDWIS compliance dashboard API.

A Flask app exposing JSON endpoints over a pre-loaded, read-only SDWIS
dataset:
  - facility search, lookup and top violators
  - violation calendar
  - AI urgent action, facility summary and violation explanation
"""

import json
import logging
import os
import sys

from flask import Flask, Response

# Configure logging so gunicorn captures warnings from the narrative layer
logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

# Ensure project root is importable
sys.path.insert(0, os.path.join(os.path.dirname(os.path.abspath(__file__)), ".."))

from web.routes_api import bp as api_bp  # noqa: E402

app = Flask(__name__)
app.json.sort_keys = False
app.register_blueprint(api_bp)


@app.route("/health")
def health():
    """Health check endpoint: tests database connectivity."""
    from src.db import BACKEND, DATABASE_URL, get_pool_stats, query_one
    from src.narrative.client import is_narrative_available
    info = {
        "status": "ok",
        "backend": BACKEND,
        "has_db_url": bool(DATABASE_URL),
        "narrative_available": is_narrative_available(),
    }
    if BACKEND == "postgres":
        info["pool"] = get_pool_stats()
    try:
        row = query_one("SELECT COUNT(*) FROM sdwa_pub_water_systems")
        info["water_systems"] = row[0] if row else 0
        info["db_connected"] = True
    except Exception as e:
        info["db_connected"] = False
        info["db_error"] = str(e)
        info["status"] = "degraded"
    return Response(json.dumps(info, indent=2), mimetype="application/json")


@app.errorhandler(404)
def not_found(e):
    return Response(json.dumps({"error": "not found"}), status=404, mimetype="application/json")


if __name__ == "__main__":
    port = int(os.environ.get("PORT", "5000"))
    app.run(host="0.0.0.0", port=port, debug=os.environ.get("FLASK_DEBUG") == "1")
