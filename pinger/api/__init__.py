"""
API module.
Contains the FastAPI application, request pipeline and routes.
"""

from pinger.api.main import build_app, create_app, run

__all__ = ["create_app", "build_app", "run"]
