"""
API Dependencies package.

Shared service wiring for routers.
"""

from .services import Services, get_services, shutdown_services

__all__ = ["Services", "get_services", "shutdown_services"]
