from .middleware import gate_request, log_request
from .routes import router

__all__ = ["gate_request", "log_request", "router"]
