"""HTTP clients for backend services."""

from gateway.clients.service_client import ServiceClient

__all__ = ["ServiceClient"]
