"""
asgi.py -- ASGI entry point for the job portal API.

CRUD routers (jobs, profiles, applications) are assembled here beside the
auth API as they are added, so api/main.py stays free of them.

Run with:  uvicorn asgi:app --reload
"""

from api.main import app

__all__ = ["app"]
