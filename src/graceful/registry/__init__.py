"""
In-process Service Registry

This package provides:
1. InMemoryRegistry — dict-backed registry for local runs and tests
2. ServiceRegistryClient — HTTP client for registering and querying
3. start_registry_server — launches the HTTP API in a daemon thread
"""

from .service_registry import (
    InMemoryRegistry,
    RegistryError,
    ServiceRegistryClient,
    ServiceInfo,
    start_registry_server,
)

__all__ = [
    'InMemoryRegistry',
    'RegistryError',
    'ServiceRegistryClient',
    'ServiceInfo',
    'start_registry_server',
]
