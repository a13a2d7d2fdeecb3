import asyncio
import logging
import uuid
from contextlib import asynccontextmanager, suppress
from datetime import datetime, timezone

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from pdf_service.auth.dependencies import require_api_key
from pdf_service.config import DEFAULT_API_KEY, Settings, settings as default_settings
from pdf_service.documents.routes import router as pdf_router
from pdf_service.errors import register_exception_handlers
from pdf_service.images.routes import router as image_router
from pdf_service.services import build_services
from pdf_service.storage import filesystem

logger = logging.getLogger(__name__)


def create_app(settings: Settings = None, renderer=None) -> FastAPI:
    settings = settings or default_settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup: directories, metadata store, tracker and pipelines
        services = build_services(settings, renderer=renderer)
        app.state.services = services
        sweeper = asyncio.create_task(
            services.tracker.sweep_forever(settings.upload_sweep_interval_seconds)
        )

        if settings.api_key == DEFAULT_API_KEY:
            logger.warning("⚠️  API_KEY not set in environment variables. Using default key.")
        logger.info(f"🚀 {settings.app_name} started ({settings.environment})")
        logger.info(f"🗂️  Upload: {settings.upload_dir}")
        logger.info(f"📁 Processed: {settings.processed_dir}")
        logger.info(f"🖼️  Images: {settings.images_dir}")
        logger.info(f"🎯 Max size: {filesystem.format_file_size(settings.max_file_size)}")

        yield

        # Shutdown: stop the sweeper, drop upload sessions, close the store
        sweeper.cancel()
        with suppress(asyncio.CancelledError):
            await sweeper
        services.close()
        logger.info("👋 Shutting down...")

    app = FastAPI(
        title=settings.app_name,
        description="Upload PDFs, truncate them to selected pages and render pages to images",
        version=settings.app_version,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def assign_request_id(request: Request, call_next):
        request.state.request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
        response = await call_next(request)
        response.headers["X-Request-ID"] = request.state.request_id
        return response

    register_exception_handlers(app, development=settings.is_development)

    api_auth = [Depends(require_api_key)]
    app.include_router(pdf_router, prefix="/api/pdf", tags=["PDF"], dependencies=api_auth)
    app.include_router(image_router, prefix="/api/images", tags=["Images"], dependencies=api_auth)

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {
            "success": True,
            "message": f"{settings.app_name} is running",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "environment": settings.environment,
            "version": settings.app_version,
        }

    @app.get("/api-docs")
    async def api_docs():
        """Endpoint overview (no auth required)."""
        return {
            "success": True,
            "data": {
                "title": settings.app_name,
                "version": settings.app_version,
                "endpoints": {
                    "POST /api/pdf/initiate-upload": "Get an upload id for X-Upload-ID",
                    "GET /api/pdf/upload-progress/{upload_id}": "Check upload progress",
                    "POST /api/pdf/upload": "Upload PDF only",
                    "POST /api/pdf/upload-and-truncate": "Upload PDF and truncate it",
                    "POST /api/pdf/truncate/{key}": "Truncate an uploaded PDF",
                    "GET /api/pdf/status/{key}": "Check truncation status",
                    "GET /api/pdf/download/{key}": "Download a PDF",
                    "GET /api/pdf/info/{key}": "Get file information",
                    "GET /api/pdf/list": "List all files",
                    "DELETE /api/pdf/truncated/{key}": "Delete truncated PDF",
                    "DELETE /api/pdf/original/{key}": "Delete original PDF and its images",
                    "POST /api/images/convert/{key}": "Convert PDF pages to images",
                    "GET /api/images/status/{key}": "Check image processing status",
                    "GET /api/images/download/{image_key}": "Download specific image",
                    "GET /api/images/list/{original_key}": "List all images for original PDF",
                    "GET /api/images/info/{image_key}": "Get image information",
                    "DELETE /api/images/{image_key}": "Delete specific image",
                    "DELETE /api/images/original/{original_key}": "Delete all images for original PDF",
                },
                "authentication": "API Key required in X-API-Key header or Authorization header",
                "supported_formats": {
                    "upload": ["application/pdf"],
                    "image_formats": ["png", "jpeg", "tiff"],
                },
                "max_file_size": f"{settings.max_file_size} bytes "
                                 f"({filesystem.format_file_size(settings.max_file_size)})",
            },
        }

    return app


logging.basicConfig(
    level=default_settings.log_level.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)

app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "pdf_service.main:app",
        host="0.0.0.0",
        port=8000,
        reload=default_settings.debug
    )
