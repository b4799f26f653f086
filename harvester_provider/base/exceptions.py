"""
Provider exception hierarchy.

Every failure surfaced to the CLI boundary inherits from
:class:`ProviderError`.  The CLI maps the concrete class to an exit code,
so raise the most specific type available.
"""


# ── Base ──────────────────────────────────────────────────────────────
class ProviderError(Exception):
    """Root exception for all provider errors."""


# ── Configuration ─────────────────────────────────────────────────────
class ConfigError(ProviderError):
    """Missing or invalid provider configuration or credentials."""


# ── Validation ────────────────────────────────────────────────────────
class ValidationError(ProviderError):
    """Malformed request data: flavor, extra specs, tools, repo URL."""


# ── Not found ─────────────────────────────────────────────────────────
class NotFoundError(ProviderError):
    """A cluster resource does not exist."""


class InstanceNotFoundError(NotFoundError):
    """VM or VM instance not found."""


class ImageNotFoundError(NotFoundError):
    """Backing image (and therefore its storage class) not found."""


# ── Ownership ─────────────────────────────────────────────────────────
class OwnershipError(ProviderError):
    """Instance exists but is labelled with another controller's ID."""


# ── Upstream / cluster API ────────────────────────────────────────────
class UpstreamError(ProviderError):
    """Any other cluster API failure."""


class InstanceAlreadyExistsError(UpstreamError):
    """A VM with the requested name already exists."""


class CleanupError(UpstreamError):
    """The VM was removed but one of its volume claims could not be."""


class ConvergenceTimeoutError(UpstreamError):
    """An instance did not reach the wanted status in time."""
