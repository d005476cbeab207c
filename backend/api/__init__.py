# api/__init__.py
from api.server import (
    app,
    ServerConfig,
)

__all__ = [
    "app",
    "ServerConfig",
]
