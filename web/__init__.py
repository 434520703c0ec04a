"""FastAPI web application for Web2Desk.

This module provides the HTTP API over the core services. All business
logic is delegated to core modules in web2desk/.
"""

from web.app import app, create_app

__all__ = ["app", "create_app"]
