"""
Summarium - Dependency Injection Container

Provides a lightweight IoC container for wiring the summary engine at
startup.

Features:
- Singleton and Transient services
- Factory function support (sync and async)
- Constructor auto-wiring from type hints
- Ordered async disposal
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import (
    Any,
    Callable,
    Dict,
    Generic,
    Optional,
    Set,
    Type,
    TypeVar,
    get_type_hints,
)

T = TypeVar("T")


class ServiceLifetime(Enum):
    """Service lifetime options."""

    SINGLETON = "singleton"  # One instance per container
    TRANSIENT = "transient"  # New instance every time


@dataclass
class ServiceDescriptor(Generic[T]):
    """Describes how a service should be created and managed."""

    service_type: Type[T]
    implementation_type: Optional[Type[T]] = None
    factory: Optional[Callable[[], T]] = None
    async_factory: Optional[Callable[[], Any]] = None
    instance: Optional[T] = None
    lifetime: ServiceLifetime = ServiceLifetime.SINGLETON

    def __post_init__(self) -> None:
        if (
            self.implementation_type is None
            and self.factory is None
            and self.async_factory is None
            and self.instance is None
        ):
            self.implementation_type = self.service_type


class Container:
    """
    Dependency Injection Container.

    Manages service registration, resolution, and lifecycle.

    Usage:
        container = Container()

        # Register services
        container.register_instance(Clock, SystemClock())
        container.register_singleton(CreateSummary)
        container.register_factory(ISummaryRepository, open_repository)

        # Resolve services
        create = await container.resolve_async(CreateSummary)
    """

    def __init__(self) -> None:
        self._descriptors: Dict[Type, ServiceDescriptor] = {}
        self._singletons: Dict[Type, Any] = {}
        self._initializing: Set[Type] = set()

    def register(
        self,
        service_type: Type[T],
        implementation_type: Optional[Type[T]] = None,
        lifetime: ServiceLifetime = ServiceLifetime.SINGLETON,
    ) -> "Container":
        """Register a service with its implementation."""
        self._descriptors[service_type] = ServiceDescriptor(
            service_type=service_type,
            implementation_type=implementation_type or service_type,
            lifetime=lifetime,
        )
        return self

    def register_singleton(
        self,
        service_type: Type[T],
        implementation_type: Optional[Type[T]] = None,
    ) -> "Container":
        return self.register(service_type, implementation_type, ServiceLifetime.SINGLETON)

    def register_transient(
        self,
        service_type: Type[T],
        implementation_type: Optional[Type[T]] = None,
    ) -> "Container":
        return self.register(service_type, implementation_type, ServiceLifetime.TRANSIENT)

    def register_instance(self, service_type: Type[T], instance: T) -> "Container":
        """Register an existing instance as singleton."""
        self._descriptors[service_type] = ServiceDescriptor(
            service_type=service_type,
            instance=instance,
            lifetime=ServiceLifetime.SINGLETON,
        )
        self._singletons[service_type] = instance
        return self

    def register_factory(
        self,
        service_type: Type[T],
        factory: Callable[[], Any],
        lifetime: ServiceLifetime = ServiceLifetime.SINGLETON,
    ) -> "Container":
        """Register a factory function (sync or async) for creating instances."""
        is_async = asyncio.iscoroutinefunction(factory)

        self._descriptors[service_type] = ServiceDescriptor(
            service_type=service_type,
            factory=factory if not is_async else None,
            async_factory=factory if is_async else None,
            lifetime=lifetime,
        )
        return self

    def is_registered(self, service_type: Type) -> bool:
        """Check if a service is registered."""
        return service_type in self._descriptors

    def _get_descriptor(self, service_type: Type[T]) -> ServiceDescriptor[T]:
        """Get service descriptor or raise error."""
        if service_type not in self._descriptors:
            raise KeyError(f"Service '{service_type.__name__}' is not registered")
        return self._descriptors[service_type]

    def _get_dependencies(self, impl_type: Type) -> Dict[str, Any]:
        """Get constructor dependencies from type hints."""
        if impl_type.__init__ is object.__init__:
            return {}
        hints = get_type_hints(impl_type.__init__)
        hints.pop("return", None)
        return hints

    def _create_instance(self, descriptor: ServiceDescriptor[T]) -> T:
        """Create a service instance synchronously."""
        if descriptor.instance is not None:
            return descriptor.instance

        if descriptor.factory is not None:
            return descriptor.factory()

        if descriptor.async_factory is not None:
            raise TypeError(
                f"Service '{descriptor.service_type.__name__}' has an async factory; "
                f"use resolve_async"
            )

        impl_type = descriptor.implementation_type
        if impl_type is None:
            raise ValueError(f"No implementation for {descriptor.service_type.__name__}")

        resolved_deps = {
            name: self.resolve(param_type)
            for name, param_type in self._get_dependencies(impl_type).items()
            if param_type in self._descriptors
        }
        return impl_type(**resolved_deps)

    async def _create_instance_async(self, descriptor: ServiceDescriptor[T]) -> T:
        """Create a service instance asynchronously."""
        if descriptor.instance is not None:
            return descriptor.instance

        if descriptor.async_factory is not None:
            return await descriptor.async_factory()

        if descriptor.factory is not None:
            return descriptor.factory()

        impl_type = descriptor.implementation_type
        if impl_type is None:
            raise ValueError(f"No implementation for {descriptor.service_type.__name__}")

        resolved_deps = {}
        for name, param_type in self._get_dependencies(impl_type).items():
            if param_type in self._descriptors:
                resolved_deps[name] = await self.resolve_async(param_type)
        return impl_type(**resolved_deps)

    def resolve(self, service_type: Type[T]) -> T:
        """Resolve a service instance."""
        descriptor = self._get_descriptor(service_type)

        if descriptor.lifetime == ServiceLifetime.TRANSIENT:
            return self._create_instance(descriptor)

        if service_type not in self._singletons:
            # Detect circular dependencies
            if service_type in self._initializing:
                raise RecursionError(f"Circular dependency detected for {service_type.__name__}")
            self._initializing.add(service_type)
            try:
                self._singletons[service_type] = self._create_instance(descriptor)
            finally:
                self._initializing.discard(service_type)
        return self._singletons[service_type]

    async def resolve_async(self, service_type: Type[T]) -> T:
        """Resolve a service instance, awaiting async factories."""
        descriptor = self._get_descriptor(service_type)

        if descriptor.lifetime == ServiceLifetime.TRANSIENT:
            return await self._create_instance_async(descriptor)

        if service_type not in self._singletons:
            if service_type in self._initializing:
                raise RecursionError(f"Circular dependency detected for {service_type.__name__}")
            self._initializing.add(service_type)
            try:
                self._singletons[service_type] = await self._create_instance_async(descriptor)
            finally:
                self._initializing.discard(service_type)
        return self._singletons[service_type]

    async def dispose_async(self) -> None:
        """Dispose singleton instances, most recently created first."""
        for instance in reversed(list(self._singletons.values())):
            for method_name in ("stop", "shutdown", "close"):
                method = getattr(instance, method_name, None)
                if method is None:
                    continue
                if asyncio.iscoroutinefunction(method):
                    await method()
                else:
                    method()
                break
        self._singletons.clear()
