"""
FastAPI Application

ASGI entry point for the Sales Dashboard API.

    uvicorn src.main:app
    gunicorn src.main:app -c gunicorn.conf.py
"""

from src.config import get_settings
from src.serving.api import create_api_app

settings = get_settings()

app = create_api_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=settings.api.host, port=settings.api.port)
