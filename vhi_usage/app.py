import logging
from datetime import datetime, timezone

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from vhi_usage import __version__
from vhi_usage.application import build_services
from vhi_usage.core.settings import Settings
from vhi_usage.routes import billing, usage
from vhi_usage.routes.auth import require_bearer_token


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or Settings.from_environment()
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    app = FastAPI(title="VHI Usage & Billing API", version=__version__)
    app.state.settings = settings
    build_services(settings)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    protected = [Depends(require_bearer_token)]
    app.include_router(usage.router, prefix="/api/v1", dependencies=protected)
    app.include_router(billing.router, prefix="/api/v1", dependencies=protected)

    @app.get("/health", include_in_schema=False)
    async def health() -> JSONResponse:
        """Unauthenticated liveness probe."""
        return JSONResponse({"status": "healthy", "time": datetime.now(timezone.utc).isoformat(timespec="seconds")})

    return app
