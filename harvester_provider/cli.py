"""GARM external-provider entry point.

GARM runs the provider once per operation and passes everything through
the environment::

    GARM_COMMAND=GetInstance \\
    GARM_PROVIDER_CONFIG_FILE=/etc/garm/harvester.toml \\
    GARM_CONTROLLER_ID=... GARM_INSTANCE_ID=runner-1 \\
    garm-provider-harvester

``CreateInstance`` additionally reads the bootstrap JSON from stdin.  The
result is written to stdout as JSON; on failure a message goes to stderr
and the exit code tells GARM what happened.
"""

from __future__ import annotations

import argparse
import json
import os
import signal
import sys
from typing import Any, TextIO

from harvester_provider.base.config import (
    SUPPORTED_INTERFACE_VERSIONS,
    config_json_schema,
    extra_specs_json_schema,
    load_config,
)
from harvester_provider.base.exceptions import (
    InstanceAlreadyExistsError,
    NotFoundError,
    ProviderError,
    ValidationError,
)
from harvester_provider.base.params import BootstrapRequest
from harvester_provider.base.provider import ProviderBlueprint
from harvester_provider.base.supported_commands import existing_commands, static_commands
from harvester_provider.factory import build_provider
from harvester_provider.harvester.provider import validate_pool_info
from harvester_provider.version import __version__

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_NOT_FOUND = 30
EXIT_DUPLICATE = 31
EXIT_INTERRUPTED = 130

_EXIT_CODES: tuple[tuple[type[ProviderError], int], ...] = (
    (NotFoundError, EXIT_NOT_FOUND),
    (InstanceAlreadyExistsError, EXIT_DUPLICATE),
)


def exit_code_for(error: BaseException) -> int:
    """Map an exception to the exit code GARM understands."""
    for exc_type, code in _EXIT_CODES:
        if isinstance(error, exc_type):
            return code
    return EXIT_ERROR


def _build_parser() -> argparse.ArgumentParser:
    """Build the argparse parser.

    Every option defaults to the matching ``GARM_*`` environment variable,
    so GARM can invoke the binary without arguments.
    """
    parser = argparse.ArgumentParser(
        prog="garm-provider-harvester",
        description="GARM external provider for Harvester / KubeVirt",
    )
    parser.add_argument(
        "--command",
        default=os.environ.get("GARM_COMMAND"),
        choices=existing_commands,
        help="Operation to perform (env: GARM_COMMAND)",
    )
    parser.add_argument(
        "--config", "-c",
        default=os.environ.get("GARM_PROVIDER_CONFIG_FILE"),
        help="Path to the provider TOML config (env: GARM_PROVIDER_CONFIG_FILE)",
    )
    parser.add_argument(
        "--controller-id",
        default=os.environ.get("GARM_CONTROLLER_ID"),
        help="ID of the calling GARM controller (env: GARM_CONTROLLER_ID)",
    )
    parser.add_argument(
        "--pool-id",
        default=os.environ.get("GARM_POOL_ID"),
        help="Pool to list (env: GARM_POOL_ID)",
    )
    parser.add_argument(
        "--instance-id",
        default=os.environ.get("GARM_INSTANCE_ID"),
        help="Instance to act on (env: GARM_INSTANCE_ID)",
    )
    parser.add_argument(
        "--pool-image",
        default=os.environ.get("GARM_POOL_IMAGE"),
        help="Pool image to validate (env: GARM_POOL_IMAGE)",
    )
    parser.add_argument(
        "--pool-flavor",
        default=os.environ.get("GARM_POOL_FLAVOR"),
        help="Pool flavor to validate (env: GARM_POOL_FLAVOR)",
    )
    parser.add_argument(
        "--pool-extra-specs",
        default=os.environ.get("GARM_POOL_EXTRASPECS"),
        help="Pool extra specs JSON to validate (env: GARM_POOL_EXTRASPECS)",
    )
    return parser


def _require(value: str | None, what: str) -> str:
    if not value:
        raise ValidationError(f"{what} is required")
    return value


def run_command(
    provider: ProviderBlueprint,
    command: str,
    *,
    instance_id: str | None = None,
    pool_id: str | None = None,
    stdin: TextIO | None = None,
) -> Any:
    """Dispatch one GARM command to *provider*.

    Returns:
        A JSON-serialisable result, or ``None`` for commands with no output.
    """
    if command == "CreateInstance":
        request = BootstrapRequest.from_json((stdin or sys.stdin).read())
        return provider.create_instance(request).to_json_dict()
    if command == "DeleteInstance":
        provider.delete_instance(_require(instance_id, "GARM_INSTANCE_ID"))
        return None
    if command == "GetInstance":
        return provider.get_instance(_require(instance_id, "GARM_INSTANCE_ID")).to_json_dict()
    if command == "ListInstances":
        return [i.to_json_dict() for i in provider.list_instances(pool_id or None)]
    if command == "RemoveAllInstances":
        provider.remove_all_instances()
        return None
    if command == "Start":
        provider.start_instance(_require(instance_id, "GARM_INSTANCE_ID"))
        return None
    if command == "Stop":
        provider.stop_instance(_require(instance_id, "GARM_INSTANCE_ID"))
        return None
    if command == "GetVersion":
        return provider.get_version()
    return run_static_command(command)


def run_static_command(
    command: str,
    *,
    pool_image: str | None = None,
    pool_flavor: str | None = None,
    pool_extra_specs: str | None = None,
) -> Any:
    """Answer the commands that need neither a config file nor a cluster.

    Raises:
        ValidationError: For an unknown command, or a pool that fails
            ``ValidatePoolInfo``.
    """
    if command == "GetVersion":
        return __version__
    if command == "GetSupportedInterfaceVersions":
        return list(SUPPORTED_INTERFACE_VERSIONS)
    if command == "GetConfigJSONSchema":
        return config_json_schema()
    if command == "GetExtraSpecsJSONSchema":
        return extra_specs_json_schema()
    if command == "ValidatePoolInfo":
        validate_pool_info(
            _require(pool_image, "GARM_POOL_IMAGE"),
            _require(pool_flavor, "GARM_POOL_FLAVOR"),
            pool_extra_specs,
        )
        return None
    raise ValidationError(f"Unknown command '{command}'")


def _interrupt(signum: int, frame: Any) -> None:
    raise KeyboardInterrupt(f"received signal {signum}")


def main(argv: list[str] | None = None) -> None:
    """CLI entry point.

    Interface queries and pool validation are answered directly.  Any other
    command loads the config, builds the provider and runs against the cluster.
    Results are printed as JSON; errors go to stderr with a GARM exit code.

    Args:
        argv: Optional argument list (defaults to ``sys.argv``).
    """
    parser = _build_parser()
    ns = parser.parse_args(argv)

    if not ns.command:
        print("GARM_COMMAND is required", file=sys.stderr)
        sys.exit(EXIT_ERROR)

    # SIGTERM aborts the in-flight API call the same way Ctrl-C does.
    signal.signal(signal.SIGTERM, _interrupt)

    try:
        if ns.command in static_commands:
            result = run_static_command(
                ns.command,
                pool_image=ns.pool_image,
                pool_flavor=ns.pool_flavor,
                pool_extra_specs=ns.pool_extra_specs,
            )
        else:
            config = load_config(_require(ns.config, "GARM_PROVIDER_CONFIG_FILE"))
            provider = build_provider(config, _require(ns.controller_id, "GARM_CONTROLLER_ID"))
            result = run_command(
                provider,
                ns.command,
                instance_id=ns.instance_id,
                pool_id=ns.pool_id,
            )
    except KeyboardInterrupt as e:
        print(f"Interrupted: {e}", file=sys.stderr)
        sys.exit(EXIT_INTERRUPTED)
    except ProviderError as e:
        print(f"Failed to run command {ns.command}: {e}", file=sys.stderr)
        sys.exit(exit_code_for(e))

    if result is not None:
        print(json.dumps(result) if isinstance(result, (dict, list)) else result)
    sys.exit(EXIT_OK)


if __name__ == "__main__":
    main()
