"""Configuration loading and merging for graceful."""

from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Optional

import yaml

from .registry import ServiceInfo


@dataclass
class GracefulConfig:
    # Identity advertised to the registry
    service_name: str = "graceful-service"
    service_id: Optional[str] = None
    host: str = "127.0.0.1"
    port: int = 8080

    # Address the /deregister server binds to
    bind_host: str = "0.0.0.0"

    # Registry server
    registry_host: str = "localhost"
    registry_port: int = 8471

    register_enabled: bool = True
    deregister_on_shutdown: bool = True

    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def resolved_service_id(self) -> str:
        """Explicit service_id, or ``<service_name>-<host>-<port>``."""
        return self.service_id or f"{self.service_name}-{self.host}-{self.port}"

    def to_service_info(self) -> ServiceInfo:
        return ServiceInfo(
            service_id=self.resolved_service_id,
            host=self.host,
            port=self.port,
            service_type=self.service_name,
            metadata=dict(self.metadata),
        )


def load_config(path: str | Path) -> GracefulConfig:
    """Load a GracefulConfig from a YAML file. Unknown keys are ignored."""
    path = Path(path)
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: expected a mapping at the top level, got {type(data).__name__}")

    valid_fields = {f.name for f in fields(GracefulConfig)}
    filtered = {k: v for k, v in data.items() if k in valid_fields}
    return GracefulConfig(**filtered)


def merge_cli_args(config: GracefulConfig, args) -> GracefulConfig:
    """Overlay CLI arguments onto an existing config. CLI values take precedence."""
    for f in fields(GracefulConfig):
        if f.name == "metadata":
            continue
        cli_val = getattr(args, f.name, None)
        if cli_val is not None:
            setattr(config, f.name, cli_val)
    return config
