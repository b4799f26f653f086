from typing import Literal, get_args


garm_commands = Literal[
    "CreateInstance",
    "DeleteInstance",
    "GetInstance",
    "ListInstances",
    "RemoveAllInstances",
    "Start",
    "Stop",
    "GetVersion",
    # interface v0.1.1
    "GetSupportedInterfaceVersions",
    "ValidatePoolInfo",
    "GetConfigJSONSchema",
    "GetExtraSpecsJSONSchema",
]


existing_commands: tuple[str, ...] = get_args(garm_commands)

# Answered without a config file or a cluster connection.
static_commands: frozenset[str] = frozenset({
    "GetVersion",
    "GetSupportedInterfaceVersions",
    "ValidatePoolInfo",
    "GetConfigJSONSchema",
    "GetExtraSpecsJSONSchema",
})
