"""
Runtime configuration.

Defaults match a stock nginx + nockchain host. Values can come from a
YAML file and are overridden by environment variables.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from jammer.errors import ConfigError

DEFAULT_WEB_ROOT = Path("/usr/share/nginx/html")
MANIFEST_NAME = "SHA256SUMS"

# Environment variable -> config field
ENV_VARS: dict[str, str] = {
    "HTML_ROOT": "web_root",
    "JAMS_DIR": "jams_dir",
    "MANIFEST": "manifest_path",
    "SERVICE_NAME": "service_name",
    "NOCKCHAIN_RPC": "node_rpc",
    "NOCKCHAIN_BIN": "node_bin",
    "NOCKCHAIN_DIR": "node_data_dir",
    "NOCKCHAIN_USER": "node_user",
    "JAMMER_POLL_INTERVAL": "poll_interval",
    "JAMMER_TRANSITION_TIMEOUT": "transition_timeout",
    "JAMMER_RPC_TIMEOUT": "rpc_timeout",
    "JAMMER_EXPORT_TIMEOUT": "export_timeout",
    "JAMMER_LOCK_FILE": "lock_file",
    "JAMMER_LOCK_TIMEOUT": "lock_timeout",
}


class JammerConfig(BaseModel):
    """Configuration for one jammer invocation."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    # Published tree
    web_root: Path = Field(default=DEFAULT_WEB_ROOT, description="Web root directory")
    jams_dir: Path = Field(description="Directory holding <height>.jam artifacts")
    manifest_path: Path = Field(description="Path of the SHA256SUMS manifest")
    published_files: tuple[str, ...] = Field(
        default=("index.html", "privacy.html"),
        description="Top-level files under web_root included in the manifest",
    )
    node_data_dirname: str = Field(
        default=".data.nockchain",
        description="Node-internal directory that must never appear under jams_dir",
    )

    # Node
    service_name: str = Field(default="nockchain", description="systemd unit name")
    node_rpc: str = Field(default="localhost:5556", description="Node gRPC endpoint")
    node_bin: Path = Field(default=Path("/root/.cargo/bin/nockchain"))
    node_data_dir: Path = Field(default=Path("/root/nockchain"))
    node_user: str | None = Field(default=None, description="Run the export as this user")

    # Timing
    poll_interval: float = Field(default=1.0, gt=0)
    transition_timeout: float | None = Field(
        default=None, gt=0, description="Unset waits forever for service transitions"
    )
    rpc_timeout: float = Field(default=30.0, gt=0)
    export_timeout: float | None = Field(
        default=15 * 60, gt=0, description="Seconds to wait for the jam file to appear"
    )

    # Cross-process lock (off unless lock_file is set)
    lock_file: Path | None = None
    lock_timeout: float = Field(default=0.0, ge=0)

    @model_validator(mode="before")
    @classmethod
    def _derive_paths(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        web_root = Path(data.get("web_root") or DEFAULT_WEB_ROOT)
        if not data.get("jams_dir"):
            data["jams_dir"] = web_root / "jams"
        if not data.get("manifest_path"):
            data["manifest_path"] = Path(data["jams_dir"]) / MANIFEST_NAME
        return data

    @classmethod
    def load(
        cls,
        path: Path | None = None,
        environ: Mapping[str, str] | None = None,
    ) -> JammerConfig:
        """
        Build a config from defaults, an optional YAML file and the environment.

        Args:
            path: Optional YAML file with snake_case field names.
            environ: Environment mapping. Defaults to os.environ.

        Returns:
            Validated configuration.

        Raises:
            ConfigError: If the file is unreadable or a value is invalid.
        """
        values: dict[str, Any] = {}

        if path is not None:
            values.update(_read_yaml(Path(path)))

        values.update(_read_env(os.environ if environ is None else environ))

        try:
            return cls.model_validate(values)
        except ValidationError as e:
            raise ConfigError(f"Invalid configuration: {e}") from e

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-friendly dictionary."""
        return self.model_dump(mode="json")


def _read_yaml(path: Path) -> dict[str, Any]:
    if not path.exists():
        raise ConfigError("Config file not found", path=str(path))
    try:
        with path.open() as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Error parsing config: {e}", path=str(path)) from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError("Config file must contain a mapping", path=str(path))
    return data


def _read_env(environ: Mapping[str, str]) -> dict[str, Any]:
    values: dict[str, Any] = {}
    for var, field_name in ENV_VARS.items():
        raw = environ.get(var)
        if raw is None or raw == "":
            continue
        values[field_name] = raw
    return values
