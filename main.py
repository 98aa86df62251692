# main.py

from taskapi.app import create_app
from taskapi.config import configure_structlog, settings

configure_structlog(settings)

app = create_app(settings)

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.reload,
        log_config=None,
    )
