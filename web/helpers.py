"""Shared helpers for the web layer."""

import asyncio
import concurrent.futures
import logging

from flask import jsonify

logger = logging.getLogger(__name__)


def run_async(coro):
    """Run an async function synchronously."""
    try:
        loop = asyncio.get_event_loop()
        if loop.is_running():
            with concurrent.futures.ThreadPoolExecutor() as pool:
                return pool.submit(asyncio.run, coro).result()
        return loop.run_until_complete(coro)
    except RuntimeError:
        return asyncio.run(coro)


def json_error(message: str, status: int):
    """JSON error body with the given status code."""
    return jsonify({"error": message}), status


def yes_no(value) -> str:
    """Normalize a Y/N indicator sent as a string or boolean."""
    if value is True:
        return "Y"
    if isinstance(value, str) and value.strip().upper() in ("Y", "YES", "TRUE"):
        return "Y"
    return "N"
