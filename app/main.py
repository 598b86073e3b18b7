"""ASGI entry point.

Run with: uvicorn app.main:app --reload --port 8000
"""

from app.core.app_factory import create_app

app = create_app()
