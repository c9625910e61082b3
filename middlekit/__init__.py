"""WSGI middleware and helpers: process monitor, PASETO authentication, Swagger UI, WebSocket handshake helpers, a socket event hub and HTTP trace attributes."""

__version__ = "0.1.0"