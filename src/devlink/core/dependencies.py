"""Dependency injection and service initialization for Devlink.

This module implements a service container pattern for managing application
dependencies and their lifecycles. The user directory is created once here
and handed to the social graph service, so no module holds a global storage
handle.

The module provides:
- ServiceContainer: Main container for managing service instances
- Dependency providers: FastAPI-compatible dependency functions

Example:
    Using dependency injection in FastAPI routes:
        from fastapi import Depends
        from devlink.core.dependencies import get_graph_service

        @router.get("/followers/{user_id}")
        async def list_followers(
            user_id: str,
            service: SocialGraphService = Depends(get_graph_service)
        ):
            return await service.list_followers(user_id)
"""

from functools import lru_cache
from typing import Any

from ..services.directory import InMemoryUserDirectory, UserDirectory
from ..services.graph import SocialGraphService
from .exceptions import ServiceError
from .settings import settings

DIRECTORY_BACKENDS: dict[str, type[UserDirectory]] = {
    InMemoryUserDirectory.name: InMemoryUserDirectory,
}


class ServiceContainer:
    """Service container for dependency injection and lifecycle management.

    Services are lazily initialized and cached for reuse throughout the
    application lifecycle.

    Attributes:
        _services: Internal dictionary storing initialized service instances.
        _initialized: Flag indicating whether the container has been initialized.
    """

    def __init__(self) -> None:
        self._services: dict[str, Any] = {}
        self._initialized = False

    def initialize(self) -> None:
        """Initialize all registered services with their configurations.

        Idempotent; calling it again has no effect.

        Raises:
            ServiceError: If the configured directory backend is unknown.
        """
        if self._initialized:
            return

        directory = self._create_directory()
        self._services["user_directory"] = directory
        self._services["graph_service"] = SocialGraphService(
            directory, settings.graph
        )

        self._initialized = True

    def _create_directory(self) -> UserDirectory:
        backend = settings.storage.backend
        directory_cls = DIRECTORY_BACKENDS.get(backend)
        if directory_cls is None:
            raise ServiceError(
                f"Unknown user directory backend: {backend}",
                details={"available": sorted(DIRECTORY_BACKENDS)},
            )
        return directory_cls()

    def get_service(self, service_name: str) -> Any:
        """Get a service instance by name, or None if not registered."""
        if not self._initialized:
            self.initialize()
        return self._services.get(service_name)

    @property
    def user_directory(self) -> UserDirectory:
        return self.get_service("user_directory")

    @property
    def graph_service(self) -> SocialGraphService:
        return self.get_service("graph_service")


@lru_cache
def get_service_container() -> ServiceContainer:
    """Get cached service container instance.

    Returns:
        ServiceContainer singleton instance.
    """
    return ServiceContainer()


def get_graph_service() -> SocialGraphService:
    """FastAPI dependency provider for the social graph service.

    Example:
        from fastapi import Depends

        @router.get("/suggestions")
        async def suggestions(
            service: SocialGraphService = Depends(get_graph_service)
        ):
            ...
    """
    return get_service_container().graph_service
