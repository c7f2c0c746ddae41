"""
cloudpaste - Main FastAPI application.
"""
import logging
from pathlib import Path

from fastapi import FastAPI
from fastapi.staticfiles import StaticFiles
from fastapi.responses import FileResponse

from cloudpaste.config import settings
from cloudpaste.routes import health, pastes
from cloudpaste.service import get_paste_service

PUBLIC_DIR = Path(__file__).resolve().parent.parent / "public"

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Create FastAPI app
app = FastAPI(
    title="cloudpaste",
    description="A minimal pastebin backed by object storage",
    version="1.0.0",
)

# Mount static files
app.mount("/public", StaticFiles(directory=PUBLIC_DIR, check_dir=False), name="public")

# Include route modules
app.include_router(health.router)
app.include_router(pastes.router)


@app.on_event("startup")
async def startup_event():
    """Build the paste service and start the storage handshake in the background."""
    logger.info("cloudpaste starting...")
    service = get_paste_service()
    logger.info(f"Record store: {type(service.store).__name__}, base URL: {service.base_url}")
    service.backend.start()


@app.on_event("shutdown")
async def shutdown_event():
    """Shutdown event handler."""
    logger.info("cloudpaste shutting down...")
    await get_paste_service().backend.close()


@app.get("/", response_class=FileResponse)
async def root():
    """Serve the create paste HTML page."""
    return FileResponse(PUBLIC_DIR / "index.html", media_type="text/html")


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "cloudpaste.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
    )
