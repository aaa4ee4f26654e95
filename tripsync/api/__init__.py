"""HTTP API for the trip sync engine."""
from .routes import router

__all__ = ["router"]
