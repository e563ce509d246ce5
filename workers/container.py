"""Worker dependency injection container."""
from dependency_injector import containers, providers

from di.container import InfrastructureContainer, ServiceContainer


class WorkerContainer(containers.DeclarativeContainer):
    """Infrastructure and services only; workers need no API controllers or wiring."""

    infrastructure = providers.Container(InfrastructureContainer)
    services = providers.Container(ServiceContainer, infrastructure=infrastructure)
