"""Media API aggregator.

Expose the aggregated FastAPI router via `app.api.v1.routers.router`:

    from app.api.v1.routers import router
"""
