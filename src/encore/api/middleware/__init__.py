"""Middleware for the Encore API.

For CORS, FastAPI's built-in CORSMiddleware is configured in the app factory.
"""

from encore.api.middleware.correlation import CorrelationMiddleware

__all__ = ["CorrelationMiddleware"]
