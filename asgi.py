"""
asgi.py -- ASGI entry point for Express Connect.

Run with:  uvicorn asgi:app --reload

The auth API and the gate middleware live in api/main.py. Business routers
(host and attendee screens) are mounted here by the deployment that owns them.
"""

from api.main import app

__all__ = ["app"]
