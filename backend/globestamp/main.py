"""FastAPI application entrypoint and configuration.

This module provides the application factory that configures JSON
logging, CORS middleware, the stamp, enhancement, realtime and location
routers, the exception handlers, the static mount serving stored
drawings, and a health check endpoint.

Example:
    The application can be run with uvicorn:
        $ uvicorn globestamp.main:app --reload

    Or imported and used programmatically:
        >>> from globestamp.main import app
"""

import fastapi
from fastapi import staticfiles
from fastapi.middleware import cors

from globestamp.api import enhance, errors, location, realtime, stamp
from globestamp.core import config, logging_setup


def create_app() -> fastapi.FastAPI:
    """Create and configure the FastAPI application.

    Stored drawings are served from ``settings.storage_dir`` under
    ``/storage`` so the public URLs returned by the stamp endpoint resolve
    against the same process during development.

    Returns:
        Configured FastAPI application instance ready for ASGI server.
    """
    settings = config.get_settings()
    logging_setup.setup_logging(settings.log_level)
    app = fastapi.FastAPI(title="Globe Stamp", version="0.1.0")

    app.include_router(stamp.router)
    app.include_router(enhance.router)
    app.include_router(realtime.router)
    app.include_router(location.router)
    errors.register_exception_handlers(app)

    app.add_middleware(
        cors.CORSMiddleware,  # type: ignore[arg-type]
        allow_origins=settings.allow_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.mount(
        "/storage",
        staticfiles.StaticFiles(directory=settings.storage_dir, check_dir=False),
        name="storage",
    )

    @app.get("/health")
    async def health() -> dict[str, str]:  # type: ignore[misc]
        """Health check endpoint for monitoring and load balancers."""
        return {"status": "ok"}

    return app


app = create_app()
