"""HTTP surface of the scrape service (FastAPI).

``create_app`` builds an app around an optional pre-built orchestrator; the
module-level ``app`` is what uvicorn serves::

    uvicorn backend.api:app --port 3001
"""

from backend.api.app import app, create_app

__all__ = ["app", "create_app"]
