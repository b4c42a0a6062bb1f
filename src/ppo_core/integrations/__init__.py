"""External collaborators: identity provider, work tracking and low-code platform."""
from dataclasses import dataclass

from ..config import Settings
from .base import ClientResult, IdentityClient, WorkTrackingClient, PlatformClient
from .devops_client import AzureDevOpsClient
from .graph_client import GraphClient
from .power_platform_client import PowerPlatformClient
from .schema_aware import SchemaAwarePlatformClient
from .simulated import (
    SimulatedIdentityClient,
    SimulatedWorkTrackingClient,
    SimulatedPlatformClient,
)


@dataclass
class Collaborators:
    identity: IdentityClient
    work_tracking: WorkTrackingClient
    platform: PlatformClient
    simulated: bool = False

    async def aclose(self) -> None:
        """Close the HTTP clients held by live collaborators."""
        for client in (self.identity, self.work_tracking, self.platform):
            close = getattr(client, "aclose", None)
            if close is not None:
                await close()


def simulated_collaborators() -> Collaborators:
    return Collaborators(
        identity=SimulatedIdentityClient(),
        work_tracking=SimulatedWorkTrackingClient(),
        platform=SimulatedPlatformClient(),
        simulated=True,
    )


def build_collaborators(settings: Settings, dry_run: bool = False) -> Collaborators:
    """Live clients when configured, simulated ones for dry runs or missing credentials."""
    if dry_run or settings.simulated:
        return simulated_collaborators()
    return Collaborators(
        identity=GraphClient(
            access_token=settings.graph_access_token,
            base_url=settings.graph_base_url,
            timeout=settings.http_timeout_seconds,
        ),
        work_tracking=AzureDevOpsClient(
            organization=settings.devops_organization,
            personal_access_token=settings.devops_token,
            base_url=settings.devops_base_url,
            timeout=settings.http_timeout_seconds,
        ),
        platform=PowerPlatformClient(
            access_token=settings.power_platform_access_token,
            environment_url=settings.power_platform_environment_url,
            admin_url=settings.power_platform_admin_url,
            timeout=settings.http_timeout_seconds,
        ),
    )


__all__ = [
    "ClientResult",
    "IdentityClient",
    "WorkTrackingClient",
    "PlatformClient",
    "AzureDevOpsClient",
    "GraphClient",
    "PowerPlatformClient",
    "SchemaAwarePlatformClient",
    "SimulatedIdentityClient",
    "SimulatedWorkTrackingClient",
    "SimulatedPlatformClient",
    "Collaborators",
    "build_collaborators",
    "simulated_collaborators",
]
