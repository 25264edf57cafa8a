from fastapi import FastAPI
from shortlink_app.config import settings
from shortlink_app.logging_config import setup_logging
from shortlink_app.api.errors import register_error_handlers
from shortlink_app.api.v1 import urls, owner, redirect

setup_logging(settings.log_level, settings.log_file, settings.log_json)


# Create FastAPI app
app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Short-code resolution and click-accounting service built with FastAPI",
    debug=settings.debug,
)

register_error_handlers(app)


@app.get("/")
def read_root():
    """Root endpoint with API information"""
    return {
        "message": f"Welcome to {settings.app_name}",
        "version": settings.app_version,
        "docs": "/docs",
        "redoc": "/redoc"
    }


@app.get("/health")
def health_check():
    """Health check endpoint"""
    return {"status": "healthy", "environment": settings.environment}


######## Include routers
app.include_router(urls.router, prefix="/api/v1")
app.include_router(owner.router, prefix="/api/v1")
app.include_router(redirect.router)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:app", host=settings.host, port=settings.port, reload=settings.debug)
