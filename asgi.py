"""
asgi.py -- ASGI entry point for AdminGate.

Run with:  uvicorn asgi:app --reload

The page-rendering layer that serves the protected admin area mounts its own
routers onto this app; api/ stays unaware of it.
"""

from api.main import app

__all__ = ["app"]
