"""Marketplace backend client package."""

from freshroute.client.api_client import BackendClient, TokenProvider

__all__ = [
    "BackendClient",
    "TokenProvider",
]
