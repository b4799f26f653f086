"""Flavor resolution: named size → (cores, memory, disk)."""

from __future__ import annotations

from typing import NamedTuple

from harvester_provider.base.exceptions import ValidationError


class Flavor(NamedTuple):
    cores: int
    memory: str
    disk: str


FLAVORS: dict[str, Flavor] = {
    "small": Flavor(1, "256Mi", "10Gi"),
    "medium": Flavor(1, "2Gi", "12Gi"),
    "large": Flavor(4, "8Gi", "24Gi"),
    "xlarge": Flavor(8, "16Gi", "32Gi"),
}

SIZE_UNITS = ("Mi", "Gi")
CUSTOM_PREFIX = "custom"


def _positive_int(text: str) -> int | None:
    if not text.isdigit():
        return None
    value = int(text)
    return value if value > 0 else None


def _check_size(segment: str, what: str, flavor: str) -> str:
    unit = segment[-2:]
    if unit not in SIZE_UNITS or _positive_int(segment[:-2]) is None:
        raise ValidationError(
            f"Unknown {what} format '{segment}' in flavor '{flavor}' "
            f"(expected <N>Mi or <N>Gi)"
        )
    return segment


def parse_flavor(flavor: str) -> Flavor:
    """Resolve a flavor string.

    Accepts either a catalogue name (``small``, ``medium``, ``large``,
    ``xlarge``) or the custom form ``custom-<N>c-<mem>-<disk>`` where both
    sizes carry an ``Mi`` or ``Gi`` suffix, e.g. ``custom-4c-2Gi-20Gi``.

    Raises:
        ValidationError: If the flavor is neither a known name nor a
            well-formed custom flavor.
    """
    known = FLAVORS.get(flavor)
    if known is not None:
        return known

    parts = flavor.split("-")
    if parts[0] != CUSTOM_PREFIX:
        raise ValidationError(f"Unknown flavor '{flavor}'")
    if len(parts) != 4:
        raise ValidationError(
            f"Invalid custom flavor '{flavor}' (expected custom-<N>c-<mem>-<disk>)"
        )

    _, core_segment, memory, disk = parts
    if not core_segment.endswith("c"):
        raise ValidationError(f"Unknown core count format '{core_segment}' in flavor '{flavor}'")
    cores = _positive_int(core_segment[:-1])
    if cores is None:
        raise ValidationError(f"Invalid core count '{core_segment}' in flavor '{flavor}'")

    # Memory and disk are checked independently; both must be valid.
    return Flavor(
        cores,
        _check_size(memory, "memory", flavor),
        _check_size(disk, "disk", flavor),
    )
