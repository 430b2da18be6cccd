"""
Summarium - Dependency Injection Module

Provides the IoC container and the composition root that wires the
summary engine at application startup.

Design Principles:
    1. Dependency Inversion: Depend on abstractions, not concretions
    2. Composition Root: All wiring happens at application startup
    3. Explicit Dependencies: Components receive collaborators in __init__

Usage:
    from di import bootstrap

    async with bootstrap() as service:
        overview = await service.get_summary_overview()
"""

from di.container import (
    Container,
    ServiceDescriptor,
    ServiceLifetime,
)
from di.bootstrap import (
    MEMORY_DATABASE_URL,
    bootstrap,
    build_container,
    open_event_bus,
    open_repository,
)

__all__ = [
    # Container
    "Container",
    "ServiceDescriptor",
    "ServiceLifetime",
    # Composition root
    "MEMORY_DATABASE_URL",
    "bootstrap",
    "build_container",
    "open_event_bus",
    "open_repository",
]
