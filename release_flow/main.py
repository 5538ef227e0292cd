"""
FastAPI application entry point.
"""

from fastapi import FastAPI

from release_flow import __version__
from release_flow.api import webhooks
from release_flow.config import get_settings
from release_flow.utils.logging import setup_logging, get_logger

logger = get_logger(__name__)

app = FastAPI(
    title="Release Flow",
    description="Cloud Build notification relay opening release pull requests",
    version=__version__
)


@app.get("/health")
def health_check():
    """Health check endpoint for container orchestration."""
    return {"status": "healthy", "version": __version__}


@app.get("/")
def root():
    """Root endpoint."""
    return {
        "message": "Release Flow API",
        "version": __version__,
        "docs": "/docs"
    }


app.include_router(webhooks.router)


@app.on_event("shutdown")
def shutdown_event():
    """Close the release flow's HTTP clients on application shutdown."""
    logger.info("Shutting down Release Flow API")

    from release_flow.services.flow import close_flow
    close_flow()


def run() -> None:
    """Run the service with uvicorn."""
    import uvicorn

    settings = get_settings()
    setup_logging(settings.log_level)
    logger.info("Starting Release Flow API")
    uvicorn.run(app, host="0.0.0.0", port=8000, log_config=None)


if __name__ == "__main__":
    run()
