"""
crproxy: Docker/OCI Registry V2 proxy for a vanity hostname

A Python async service providing:
- Read-only pull proxy to Docker Hub and GHCR for a single owner's images
- Anonymous bearer-token negotiation for public pulls
- Blob downloads redirected straight to upstream storage
- Image catalog API for the landing page
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from quart import Quart

from crproxy.config import Config


def create_app(
    config: Optional[Config] = None,
    proxy=None,
    catalog=None,
) -> Quart:
    """Create and configure the Quart application."""
    app = Quart(__name__)

    if config is None:
        config = Config.from_env()

    app.config["CONFIG"] = config

    # Configure logging
    logging.basicConfig(
        level=logging.DEBUG if config.debug else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    from crproxy.catalog import CatalogService
    from crproxy.proxy import ProxyHandler

    if proxy is None:
        proxy = ProxyHandler.from_config(config)
    if catalog is None:
        catalog = CatalogService.from_config(config, proxy.fetcher)

    app.config["REGISTRY_PROXY"] = proxy
    app.config["CATALOG"] = catalog

    # Register blueprints
    from crproxy.catalog.routes import catalog_bp
    from crproxy.registry.routes import registry_bp

    app.register_blueprint(registry_bp)
    app.register_blueprint(catalog_bp)

    # Register health endpoints
    @app.route("/healthz")
    async def healthz():
        """Health check endpoint."""
        return {
            "status": "healthy",
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }, 200

    @app.route("/readyz")
    async def readyz():
        """Readiness check endpoint."""
        if app.config.get("REGISTRY_PROXY") is None:
            return {"status": "not ready"}, 503
        return {"status": "ready"}, 200

    return app
