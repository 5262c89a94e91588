"""
Task Manager API package.

The FastAPI application lives in tasks_api.main (``app`` for the default
environment-configured instance, ``create_app`` for explicit wiring).
"""

__version__ = "0.1.0"
