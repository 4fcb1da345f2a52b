"""
Transcoder monitoring service.
"""

from typing import Optional

from fastapi import FastAPI

from .bootstrap import Services, build_services
from .monitoring import server as monitoring


def create_app(services: Optional[Services] = None) -> FastAPI:
    """Build the FastAPI app around a set of services (default: from settings)."""
    app = FastAPI(title="Transcoder", version="0.1.0")
    app.state.services = services or build_services()
    app.include_router(monitoring.router)
    return app
