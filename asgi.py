"""
asgi.py -- ASGI entry point for tokenauth.

Run with:  uvicorn asgi:app --host 0.0.0.0 --port 19253
           python asgi.py   (uses HOST / PORT from settings)
"""

import uvicorn

from api.main import app
from core.config import get_settings

__all__ = ["app"]


def serve() -> None:
    settings = get_settings()
    uvicorn.run(app, host=settings.host, port=settings.port, log_level=settings.log_level.lower())


if __name__ == "__main__":
    serve()
