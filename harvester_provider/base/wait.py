"""
Bounded polling for instance status.

Status reads against the cluster are eventually consistent: a VM that was
just started may still report ``Stopping`` or ``Starting``.  Callers that
need a stable answer poll with :func:`wait_for_status` instead of trusting
a single read.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Iterable

from harvester_provider.base.exceptions import ConvergenceTimeoutError
from harvester_provider.base.params import InstanceStatus, ProviderInstance

logger = logging.getLogger("harvester_provider")


def wait_for_status(
    read: Callable[[], ProviderInstance],
    wanted: Iterable[InstanceStatus],
    timeout: float = 300.0,
    interval: float = 5.0,
    backoff_factor: float = 1.0,
    max_interval: float = 30.0,
) -> ProviderInstance:
    """Poll *read* until the instance reaches one of the *wanted* statuses.

    Args:
        read: Zero-argument callable returning the current instance view,
            typically ``lambda: provider.get_instance(name)``.
        wanted: Statuses that end the wait.
        timeout: Upper bound in seconds for the whole wait.
        interval: Delay in seconds between reads.
        backoff_factor: Multiplier applied to the delay after each read.
        max_interval: Cap on the delay between reads.

    Returns:
        The first instance view whose status is in *wanted*.

    Raises:
        ConvergenceTimeoutError: If the bound is exhausted first.
        NotFoundError: Propagated from *read*.
    """
    targets = frozenset(wanted)
    deadline = time.monotonic() + timeout
    delay = interval
    attempt = 0
    while True:
        attempt += 1
        current = read()
        if current.status in targets:
            return current
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            raise ConvergenceTimeoutError(
                f"Instance '{current.name}' is still {current.status.value} after "
                f"{attempt} reads (wanted {sorted(s.value for s in targets)})"
            )
        logger.debug(
            "Instance %s is %s, polling again in %.1fs…",
            current.name,
            current.status.value,
            min(delay, remaining),
        )
        time.sleep(min(delay, remaining))
        delay = min(delay * backoff_factor, max_interval)
