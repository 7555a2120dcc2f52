"""h2operator: SDWIS compliance dashboard backend."""
