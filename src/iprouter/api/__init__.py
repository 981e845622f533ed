"""Clients for the metadata server and the Compute Engine API"""

from .client import APIError, Client, ConflictError, NotFoundError, OperationError, UnauthorizedError
from .metadata import InstanceIdentity, MetadataClient, MetadataError, NetworkInterface

__all__ = [
    "APIError",
    "Client",
    "ConflictError",
    "InstanceIdentity",
    "MetadataClient",
    "MetadataError",
    "NetworkInterface",
    "NotFoundError",
    "OperationError",
    "UnauthorizedError",
]
