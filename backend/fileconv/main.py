"""
File Conversion Service
Backend API - FastAPI Application
"""
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from typing import Optional
import logging

from fileconv.api import batch, conversion, formats
from fileconv.core.config import Settings, settings
from fileconv.core.errors import ConversionError
from fileconv.services.codec_provider import CodecProvider
from fileconv.services.conversion_service import ConversionService

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


def create_app(app_settings: Optional[Settings] = None, codec: Optional[CodecProvider] = None) -> FastAPI:
    app_settings = app_settings or settings

    app = FastAPI(
        title="File Conversion API",
        description="Asynchronous file format conversion service",
        version="1.0.0"
    )

    # CORS configuration
    app.add_middleware(
        CORSMiddleware,
        allow_origins=app_settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include routers
    app.include_router(formats.router, prefix=app_settings.API_PREFIX, tags=["formats"])
    app.include_router(conversion.router, prefix=app_settings.API_PREFIX, tags=["conversion"])
    app.include_router(batch.router, prefix=app_settings.API_PREFIX, tags=["batch"])

    @app.on_event("startup")
    async def startup():
        service = ConversionService(app_settings, codec=codec)
        await service.start()
        app.state.conversion_service = service

    @app.on_event("shutdown")
    async def shutdown():
        service = getattr(app.state, "conversion_service", None)
        if service is not None:
            await service.stop()

    @app.get("/")
    async def root():
        """Health check endpoint"""
        return {"status": "ok", "service": "File Conversion API"}

    @app.get("/health")
    async def health(request: Request):
        """Health check endpoint"""
        service = getattr(request.app.state, "conversion_service", None)
        if service is None:
            return {"status": "starting"}
        return {
            "status": "healthy",
            "active_jobs": service.scheduler.active,
            "jobs_in_flight": service.scheduler.in_flight,
        }

    @app.exception_handler(ConversionError)
    async def conversion_error_handler(request, exc: ConversionError):
        """Engine errors carry their own status and code"""
        if exc.status_code >= 500:
            logger.error(f"{exc.code}: {exc.message}")
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(Exception)
    async def global_exception_handler(request, exc):
        """Global exception handler"""
        logger.error(f"Unhandled exception: {exc}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={
                "code": "INTERNAL_ERROR",
                "message": "An internal error occurred",
                "field": None
            }
        )

    return app


app = create_app()


def run():
    import uvicorn

    uvicorn.run("fileconv.main:app", host="0.0.0.0", port=8000, reload=settings.DEBUG)


if __name__ == "__main__":
    run()
