"""JWT authentication service: Flask app, token issuing, user storage, roles and admin endpoints."""

__version__ = "1.0.0"