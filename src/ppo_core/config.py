"""Application settings read from environment variables."""
import os
from functools import lru_cache
from typing import Optional

from pydantic import BaseModel, Field


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_list(name: str, default: str) -> list[str]:
    return [item.strip() for item in os.getenv(name, default).split(",") if item.strip()]


class Settings(BaseModel):
    log_level: str = "INFO"
    cors_origins: list[str] = Field(default_factory=lambda: ["*"])

    publisher_prefix: str = "jr"
    default_region: str = "unitedstates"
    enable_parallel_execution: bool = True
    # Finished operations kept in memory; the oldest are evicted first
    max_retained_operations: int = 500

    # Work tracking (Azure DevOps)
    devops_organization: str = ""
    devops_token: str = ""
    devops_base_url: str = "https://dev.azure.com"

    # Identity provider (Microsoft Graph)
    graph_access_token: str = ""
    graph_base_url: str = "https://graph.microsoft.com/v1.0"

    # Low-code platform (Power Platform admin API + Dataverse Web API)
    power_platform_access_token: str = ""
    power_platform_admin_url: str = "https://api.bap.microsoft.com/providers/Microsoft.BusinessAppPlatform"
    power_platform_environment_url: str = ""

    http_timeout_seconds: float = 30.0
    use_simulated_clients: bool = False

    # MCP server -> REST API
    api_base_url: str = "http://localhost:8000/api/v1"
    api_key: Optional[str] = None

    @property
    def has_credentials(self) -> bool:
        """True when every live collaborator has enough configuration to be called."""
        return bool(
            self.devops_organization
            and self.devops_token
            and self.graph_access_token
            and self.power_platform_access_token
            and self.power_platform_environment_url
        )

    @property
    def simulated(self) -> bool:
        return self.use_simulated_clients or not self.has_credentials


@lru_cache
def get_settings() -> Settings:
    """Build settings from the environment once per process."""
    return Settings(
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        cors_origins=_env_list("CORS_ORIGINS", "*"),
        publisher_prefix=os.getenv("PUBLISHER_PREFIX", "jr"),
        default_region=os.getenv("DEFAULT_REGION", "unitedstates"),
        enable_parallel_execution=_env_bool("ENABLE_PARALLEL_EXECUTION", True),
        max_retained_operations=int(os.getenv("MAX_RETAINED_OPERATIONS", "500")),
        devops_organization=os.getenv("AZURE_DEVOPS_ORG", ""),
        devops_token=os.getenv("AZURE_DEVOPS_PAT", ""),
        devops_base_url=os.getenv("AZURE_DEVOPS_BASE_URL", "https://dev.azure.com"),
        graph_access_token=os.getenv("GRAPH_ACCESS_TOKEN", ""),
        graph_base_url=os.getenv("GRAPH_BASE_URL", "https://graph.microsoft.com/v1.0"),
        power_platform_access_token=os.getenv("POWER_PLATFORM_ACCESS_TOKEN", ""),
        power_platform_admin_url=os.getenv(
            "POWER_PLATFORM_ADMIN_URL",
            "https://api.bap.microsoft.com/providers/Microsoft.BusinessAppPlatform",
        ),
        power_platform_environment_url=os.getenv("POWER_PLATFORM_ENVIRONMENT_URL", ""),
        http_timeout_seconds=float(os.getenv("HTTP_TIMEOUT_SECONDS", "30")),
        use_simulated_clients=_env_bool("USE_SIMULATED_CLIENTS", False),
        api_base_url=os.getenv("API_BASE_URL", "http://localhost:8000/api/v1"),
        api_key=os.getenv("PPO_API_KEY") or None,
    )
