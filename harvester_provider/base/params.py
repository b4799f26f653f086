"""
Request and response models exchanged with GARM.

Field aliases follow the JSON GARM writes to stdin for ``CreateInstance``
and reads back from stdout.
"""

from __future__ import annotations

import json
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from harvester_provider.base.exceptions import ValidationError


class InstanceStatus(str, Enum):
    """Normalized instance status reported to GARM."""

    PENDING_CREATE = "pending_create"
    RUNNING = "running"
    STOPPED = "stopped"
    PENDING_DELETE = "pending_delete"
    ERROR = "error"
    UNKNOWN = "unknown"


class AddressType(str, Enum):
    PUBLIC = "public"
    PRIVATE = "private"


class Address(BaseModel):
    address: str
    type: AddressType = AddressType.PRIVATE


class RunnerApplicationDownload(BaseModel):
    """One runner tool download offered by GARM."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    os: str | None = None
    architecture: str | None = None
    download_url: str | None = None
    filename: str | None = None
    temp_download_token: str | None = None
    sha256_checksum: str | None = None


class BootstrapRequest(BaseModel):
    """Everything GARM tells us about the runner to create."""

    model_config = ConfigDict(extra="ignore", frozen=True, populate_by_name=True)

    name: str
    os_type: str = ""
    os_arch: str = Field(default="", alias="arch")
    labels: list[str] = Field(default_factory=list)
    pool_id: str = ""
    flavor: str = ""
    image: str = ""
    tools: list[RunnerApplicationDownload] = Field(default_factory=list)
    instance_token: str = Field(default="", alias="instance-token")
    callback_url: str = Field(default="", alias="callback-url")
    metadata_url: str = Field(default="", alias="metadata-url")
    repo_url: str = ""
    ssh_keys: list[str] = Field(default_factory=list, alias="ssh-keys")
    github_runner_group: str = Field(default="", alias="github-runner-group")
    extra_specs: Any = None

    @field_validator("labels", "tools", "ssh_keys", mode="before")
    @classmethod
    def null_is_empty(cls, value: Any) -> Any:
        return [] if value is None else value

    @classmethod
    def from_json(cls, raw: str | bytes) -> BootstrapRequest:
        """Parse the bootstrap JSON document GARM writes to stdin.

        Raises:
            ValidationError: If the document is not valid JSON or misses
                required fields.
        """
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            raise ValidationError(f"Failed to decode bootstrap params: {e}") from e
        if not isinstance(data, dict):
            raise ValidationError("Bootstrap params must be a JSON object")
        try:
            return cls.model_validate(data)
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid bootstrap params: {e}") from e


class ProviderInstance(BaseModel):
    """Caller-facing view of a runner VM."""

    provider_id: str
    name: str
    os_type: str = ""
    os_arch: str = ""
    status: InstanceStatus = InstanceStatus.UNKNOWN
    addresses: list[Address] = Field(default_factory=list)
    provider_fault: str = ""

    def to_json_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json")


__all__ = [
    "InstanceStatus",
    "AddressType",
    "Address",
    "RunnerApplicationDownload",
    "BootstrapRequest",
    "ProviderInstance",
]
