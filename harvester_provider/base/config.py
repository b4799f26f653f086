"""
Pydantic configuration models for the provider.

Validates the TOML provider config and the per-pool extra specs at
load time instead of passing bad values through to the cluster API.
"""

from __future__ import annotations

import base64
import binascii
import json
import tomllib
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator
from pydantic import ValidationError as PydanticValidationError

from harvester_provider.base.exceptions import ConfigError, ValidationError


def decode_base64(value: str) -> bytes | None:
    """Return the decoded bytes of *value*, or ``None`` if it is not base64."""
    try:
        return base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError):
        return None


def decode_kubeconfig(value: str) -> dict[str, Any] | None:
    """Parse *value* as base64-encoded kubeconfig content.

    Returns ``None`` unless it decodes to a YAML mapping.  Paths such as
    ``/etc/garm/kubeconfig`` are valid base64 too, so decoding alone
    proves nothing.
    """
    raw = decode_base64(value)
    if raw is None:
        return None
    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError:
        return None
    return data if isinstance(data, dict) else None


class Credentials(BaseModel):
    """Cluster credentials.

    ``kubeconfig`` holds either base64-encoded kubeconfig content or a path
    to a kubeconfig file.  Base64 is tried first; a value that does not
    decode to a kubeconfig document must name an existing file (``~`` is
    expanded).
    """

    model_config = ConfigDict(extra="forbid")

    kubeconfig: str = Field(description="Kubeconfig path or base64 content")

    @field_validator("kubeconfig")
    @classmethod
    def check_kubeconfig(cls, value: str) -> str:
        if not value:
            raise ValueError("missing kubeconfig")
        if decode_kubeconfig(value) is not None:
            return value
        if not Path(value).expanduser().exists():
            raise ValueError(
                f"kubeconfig {value[:80]} does not exist or is not valid base64 kubeconfig"
            )
        return value

    def kubeconfig_content(self) -> dict[str, Any] | None:
        """Decoded kubeconfig document, or ``None`` when configured as a path."""
        return decode_kubeconfig(self.kubeconfig)

    def kubeconfig_path(self) -> Path:
        return Path(self.kubeconfig).expanduser()


class ProviderConfig(BaseModel):
    """Provider configuration loaded from the TOML file GARM points us at."""

    model_config = ConfigDict(extra="forbid")

    namespace: str = Field(description="Namespace holding the runner VMs")
    credentials: Credentials

    @field_validator("namespace")
    @classmethod
    def check_namespace(cls, value: str) -> str:
        if not value:
            raise ValueError("missing namespace")
        return value


def load_config(path: str | Path) -> ProviderConfig:
    """Read and validate the provider TOML config.

    Args:
        path: Path to the TOML file.

    Returns:
        A validated :class:`ProviderConfig`.

    Raises:
        ConfigError: If the file cannot be read, is not TOML, or fails
            validation.
    """
    fpath = Path(path)
    try:
        raw = tomllib.loads(fpath.read_text(encoding="utf-8"))
    except OSError as e:
        raise ConfigError(f"Failed to read config file '{fpath}': {e}") from e
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Failed to decode config file '{fpath}': {e}") from e
    if not raw:
        raise ConfigError(f"Config file '{fpath}' is empty")
    try:
        return ProviderConfig(**raw)
    except PydanticValidationError as e:
        raise ConfigError(f"Invalid config file '{fpath}': {e}") from e


# ── Extra specs ───────────────────────────────────────────────────────

NetworkAdapterType = Literal["virtio", "e1000", "e1000e", "pcnet", "ne2k_pci", "rtl8139"]
NetworkType = Literal["bridge", "masquerade"]
DiskConnectorType = Literal["virtio", "sata", "scsi"]

DEFAULT_NETWORK_NAME = "mgmt"

_DEFAULTS: dict[str, str] = {
    "network_name": DEFAULT_NETWORK_NAME,
    "network_adapter_type": "virtio",
    "network_type": "masquerade",
    "disk_connector_type": "virtio",
}


class ExtraOptions(BaseModel):
    """Per-pool extra specs.

    Every field is optional; an empty value falls back to the platform
    default (``mgmt`` network, ``virtio`` NIC, ``masquerade`` binding,
    ``virtio`` disk bus).
    """

    model_config = ConfigDict(extra="ignore", frozen=True)

    network_name: str = DEFAULT_NETWORK_NAME
    network_adapter_type: NetworkAdapterType = "virtio"
    network_type: NetworkType = "masquerade"
    disk_connector_type: DiskConnectorType = "virtio"

    @field_validator("*", mode="before")
    @classmethod
    def empty_means_default(cls, value: Any, info: ValidationInfo) -> Any:
        if value is None or value == "":
            return _DEFAULTS[info.field_name]
        return value

    @classmethod
    def from_json(cls, raw: str | bytes | dict[str, Any] | None) -> ExtraOptions:
        """Decode the opaque extra-specs blob of a bootstrap request.

        Raises:
            ValidationError: On malformed JSON or an out-of-range value.
        """
        if raw is None or raw == "" or raw == b"":
            return cls()
        try:
            data = json.loads(raw) if isinstance(raw, (str, bytes)) else raw
        except json.JSONDecodeError as e:
            raise ValidationError(f"Failed to decode extra specs: {e}") from e
        if data is None:
            return cls()
        if not isinstance(data, dict):
            raise ValidationError("Extra specs must be a JSON object")
        try:
            return cls(**data)
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid extra specs: {e}") from e


# ── Interface metadata ────────────────────────────────────────────────

SUPPORTED_INTERFACE_VERSIONS: tuple[str, ...] = ("v0.1.0", "v0.1.1")


def config_json_schema() -> dict[str, Any]:
    """JSON schema of the provider config file."""
    return ProviderConfig.model_json_schema()


def extra_specs_json_schema() -> dict[str, Any]:
    """JSON schema of the per-pool extra specs."""
    return ExtraOptions.model_json_schema()


__all__ = [
    "Credentials",
    "ProviderConfig",
    "ExtraOptions",
    "DEFAULT_NETWORK_NAME",
    "SUPPORTED_INTERFACE_VERSIONS",
    "config_json_schema",
    "decode_base64",
    "decode_kubeconfig",
    "extra_specs_json_schema",
    "load_config",
]
