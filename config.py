# config.py
"""
This module defines the data structures for our configuration.
Non-secret topology settings come from a YAML file; the SQL administrator
credentials come from the Pulumi stack configuration so the password stays
secret-classified end to end.
"""

import pulumi
import yaml
from dataclasses import dataclass, field
from typing import Any, Dict

REQUIRED_KEYS = ["location"]

CONTAINER_ACCESS_TYPES = ("private", "blob", "container")

DEFAULT_SQL_ADMIN = "pulumi"


def _section(data: Dict[str, Any], key: str) -> Dict[str, Any]:
    section = data.get(key) or {}
    if not isinstance(section, dict):
        raise ValueError(f"Configuration key '{key}' must contain a mapping")
    return section


@dataclass
class StorageConfig:
    account_name: str = "wwwcontainer"
    replication_type: str = "LRS"
    tier: str = "Standard"
    container_name: str = "zips"
    container_access: str = "private"
    archive_path: str = "wwwroot"
    blob_name: str = "wwwroot.zip"
    sas_start: str = "2019-01-01"
    sas_expiry: str = "2100-01-01"

    @property
    def sku_name(self) -> str:
        return f"{self.tier}_{self.replication_type}"


@dataclass
class AppServicePlanConfig:
    name: str = "website"
    kind: str = "App"
    tier: str = "Basic"
    size: str = "B1"


@dataclass
class SqlConfig:
    server_name: str = "pulumiserver"
    version: str = "12.0"
    database_name: str = "pulumidatabase"
    service_objective: str = "S0"


@dataclass
class WebAppConfig:
    name: str = "pulumiwebapp"


@dataclass
class TopologyConfig:
    location: str
    resource_group: str = "pulumi"
    tags: Dict[str, str] = field(default_factory=dict)
    storage: StorageConfig = field(default_factory=StorageConfig)
    app_service_plan: AppServicePlanConfig = field(default_factory=AppServicePlanConfig)
    sql: SqlConfig = field(default_factory=SqlConfig)
    web_app: WebAppConfig = field(default_factory=WebAppConfig)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TopologyConfig":
        storage = StorageConfig(**_section(data, "storage"))
        if storage.container_access not in CONTAINER_ACCESS_TYPES:
            raise ValueError(
                f"Unsupported container access type '{storage.container_access}', "
                f"expected one of {', '.join(CONTAINER_ACCESS_TYPES)}"
            )

        resource_group = _section(data, "resource_group")
        return cls(
            location=data["location"],
            resource_group=resource_group.get("name", "pulumi"),
            tags={str(k): str(v) for k, v in _section(data, "tags").items() if v is not None},
            storage=storage,
            app_service_plan=AppServicePlanConfig(**_section(data, "app_service_plan")),
            sql=SqlConfig(**_section(data, "sql")),
            web_app=WebAppConfig(**_section(data, "web_app")),
        )


@dataclass(frozen=True)
class SqlCredentials:
    username: str
    password: pulumi.Output


def load_config(file_path: str) -> Dict[str, Any]:
    """Load and validate YAML configuration from the given file path."""
    with open(file_path, "r") as file:
        config_data = yaml.safe_load(file) or {}

    if not isinstance(config_data, dict):
        raise ValueError(f"Configuration file '{file_path}' must contain a mapping")

    # Ensure required keys exist
    for key in REQUIRED_KEYS:
        if key not in config_data:
            raise ValueError(f"Missing required configuration key: {key}")

    return config_data


def load_sql_credentials(config: pulumi.Config) -> SqlCredentials:
    """Read the SQL administrator login from stack config.

    ``sqlPassword`` is mandatory; ``require_secret`` raises
    ``pulumi.ConfigMissingError`` when it is unset.
    """
    username = config.get("sqlAdmin") or DEFAULT_SQL_ADMIN
    password = config.require_secret("sqlPassword")
    return SqlCredentials(username=username, password=password)
