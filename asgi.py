"""
asgi.py -- Application entry point for Neon.

Run with:  uvicorn asgi:app --reload
"""

from api.main import app

__all__ = ["app"]
