"""Worker initialization module - ensures proper DI container setup."""
import structlog
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from workers.container import WorkerContainer

logger = structlog.get_logger("workers.initialization")


class WorkerInitializer:
    """Manages worker container lifecycle.

    Each task runs in its own event loop, so clients are created and closed
    per task instead of being shared across loops.
    """

    _container: WorkerContainer = None

    @classmethod
    def get_container(cls) -> WorkerContainer:
        """Get the worker container singleton."""
        if cls._container is None:
            cls._container = WorkerContainer()
        return cls._container

    @classmethod
    def _resources(cls, container: WorkerContainer):
        return (
            container.infrastructure.redis_db(),
            container.infrastructure.http_client(),
            container.infrastructure.model_client(),
        )

    @classmethod
    @asynccontextmanager
    async def worker_context(cls) -> AsyncGenerator[WorkerContainer, None]:
        """
        Async context manager for worker container lifecycle.

        Yields:
            Initialized worker container
        """
        container = cls.get_container()

        try:
            try:
                for resource in cls._resources(container):
                    await resource.init()
            except Exception as e:
                logger.error("worker.initialization.failed", error=str(e))
                raise

            logger.info("worker.initialization.complete")
            yield container
        finally:
            try:
                for resource in cls._resources(container):
                    await resource.shutdown()

                logger.info("worker.cleanup.complete")
            except Exception as e:
                logger.warning("worker.cleanup.error", error=str(e))


# Global worker initializer instance
worker_initializer = WorkerInitializer()
