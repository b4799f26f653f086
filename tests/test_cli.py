"""Tests for the GARM command-line entry point."""

from unittest.mock import patch, MagicMock
import io
import json

import pytest

from harvester_provider.base.exceptions import (
    ConfigError,
    InstanceAlreadyExistsError,
    InstanceNotFoundError,
    OwnershipError,
    ValidationError,
)
from harvester_provider.base.params import InstanceStatus, ProviderInstance
from harvester_provider.base.provider import ProviderBlueprint
from harvester_provider.cli import (
    EXIT_DUPLICATE,
    EXIT_ERROR,
    EXIT_INTERRUPTED,
    EXIT_NOT_FOUND,
    exit_code_for,
    main,
    run_command,
    run_static_command,
)
from harvester_provider.version import __version__

GARM_ENV = ("GARM_COMMAND", "GARM_PROVIDER_CONFIG_FILE", "GARM_CONTROLLER_ID",
            "GARM_POOL_ID", "GARM_INSTANCE_ID", "GARM_POOL_IMAGE", "GARM_POOL_FLAVOR",
            "GARM_POOL_EXTRASPECS")


def _inst(name="runner-1", status=InstanceStatus.RUNNING):
    return ProviderInstance(provider_id=name, name=name, os_type="linux", status=status)


@pytest.fixture
def garm_env(monkeypatch):
    for var in GARM_ENV:
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setenv("GARM_PROVIDER_CONFIG_FILE", "/etc/garm/harvester.toml")
    monkeypatch.setenv("GARM_CONTROLLER_ID", "ctrl-1")
    monkeypatch.setattr("harvester_provider.cli.signal", MagicMock())
    return monkeypatch


@pytest.fixture
def svc(garm_env):
    provider = MagicMock(spec=ProviderBlueprint)
    with patch("harvester_provider.cli.load_config") as mock_load, \
            patch("harvester_provider.cli.build_provider", return_value=provider) as mock_build, \
            patch("harvester_provider.cli.signal"):
        yield provider, mock_load, mock_build, garm_env


def _run(argv=None):
    with pytest.raises(SystemExit) as exc_info:
        main(argv or [])
    return exc_info.value.code


class TestExitCodes:
    def test_mapping(self):
        assert exit_code_for(InstanceNotFoundError("x")) == EXIT_NOT_FOUND
        assert exit_code_for(InstanceAlreadyExistsError("x")) == EXIT_DUPLICATE
        assert exit_code_for(OwnershipError("x")) == EXIT_ERROR
        assert exit_code_for(RuntimeError("x")) == EXIT_ERROR


class TestRunCommand:
    def test_create_reads_stdin(self):
        provider = MagicMock(spec=ProviderBlueprint)
        provider.create_instance.return_value = _inst(status=InstanceStatus.PENDING_CREATE)
        stdin = io.StringIO(json.dumps({"name": "runner-1", "os_type": "linux"}))
        result = run_command(provider, "CreateInstance", stdin=stdin)
        assert result["status"] == "pending_create"
        assert provider.create_instance.call_args[0][0].name == "runner-1"

    def test_list_without_pool(self):
        provider = MagicMock(spec=ProviderBlueprint)
        provider.list_instances.return_value = []
        assert run_command(provider, "ListInstances", pool_id="") == []
        provider.list_instances.assert_called_once_with(None)

    def test_instance_id_required(self):
        provider = MagicMock(spec=ProviderBlueprint)
        with pytest.raises(Exception, match="GARM_INSTANCE_ID"):
            run_command(provider, "DeleteInstance")
        provider.delete_instance.assert_not_called()


class TestRunStaticCommand:
    def test_interface_versions(self):
        assert run_static_command("GetSupportedInterfaceVersions") == ["v0.1.0", "v0.1.1"]

    def test_config_schema(self):
        schema = run_static_command("GetConfigJSONSchema")
        assert {"namespace", "credentials"} <= set(schema["properties"])
        assert "namespace" in schema["required"]

    def test_extra_specs_schema(self):
        schema = run_static_command("GetExtraSpecsJSONSchema")
        assert set(schema["properties"]) == {
            "network_name", "network_adapter_type", "network_type", "disk_connector_type",
        }

    def test_validate_pool_info(self):
        assert run_static_command(
            "ValidatePoolInfo",
            pool_image="default/ubuntu-22.04",
            pool_flavor="custom-2c-4Gi-20Gi",
            pool_extra_specs='{"network_type": "bridge"}',
        ) is None

    @pytest.mark.parametrize("image,flavor,extra_specs,match", [
        ("ubuntu-22.04", "small", None, "namespace"),
        ("default/ubuntu-22.04", "tiny", None, "Unknown flavor"),
        ("default/ubuntu-22.04", "small", '{"network_type": "nat"}', "Invalid extra specs"),
        ("default/ubuntu-22.04", "small", "not json", "decode extra specs"),
        ("", "small", None, "GARM_POOL_IMAGE"),
    ])
    def test_validate_pool_info_rejects(self, image, flavor, extra_specs, match):
        with pytest.raises(ValidationError, match=match):
            run_static_command(
                "ValidatePoolInfo",
                pool_image=image,
                pool_flavor=flavor,
                pool_extra_specs=extra_specs,
            )

    def test_unknown(self):
        with pytest.raises(ValidationError, match="Unknown command"):
            run_static_command("Resize")

    def test_reached_through_run_command(self):
        provider = MagicMock(spec=ProviderBlueprint)
        assert run_command(provider, "GetSupportedInterfaceVersions") == ["v0.1.0", "v0.1.1"]


class TestMain:
    @pytest.mark.parametrize("command", [
        "GetSupportedInterfaceVersions", "GetConfigJSONSchema", "GetExtraSpecsJSONSchema",
    ])
    def test_interface_queries_need_no_config(self, garm_env, capsys, command):
        garm_env.delenv("GARM_PROVIDER_CONFIG_FILE")
        with patch("harvester_provider.cli.load_config") as mock_load, \
                patch("harvester_provider.cli.build_provider") as mock_build:
            assert _run(["--command", command]) == 0
        mock_load.assert_not_called()
        mock_build.assert_not_called()
        assert json.loads(capsys.readouterr().out)

    def test_supported_versions_output(self, garm_env, capsys):
        assert _run(["--command", "GetSupportedInterfaceVersions"]) == 0
        assert json.loads(capsys.readouterr().out) == ["v0.1.0", "v0.1.1"]

    def test_validate_pool_info_from_env(self, garm_env, capsys):
        garm_env.setenv("GARM_COMMAND", "ValidatePoolInfo")
        garm_env.setenv("GARM_POOL_IMAGE", "default/ubuntu-22.04")
        garm_env.setenv("GARM_POOL_FLAVOR", "medium")
        garm_env.setenv("GARM_POOL_EXTRASPECS", '{"disk_connector_type": "sata"}')
        with patch("harvester_provider.cli.load_config") as mock_load:
            assert _run() == 0
        mock_load.assert_not_called()
        assert capsys.readouterr().out == ""

    def test_validate_pool_info_bad_flavor(self, garm_env, capsys):
        args = ["--command", "ValidatePoolInfo",
                "--pool-image", "default/ubuntu-22.04", "--pool-flavor", "custom-0c-1Gi-1Gi"]
        assert _run(args) == EXIT_ERROR
        assert "custom-0c-1Gi-1Gi" in capsys.readouterr().err

    def test_get_version_needs_no_config(self, garm_env, capsys):
        garm_env.delenv("GARM_PROVIDER_CONFIG_FILE")
        with patch("harvester_provider.cli.load_config") as mock_load:
            assert _run(["--command", "GetVersion"]) == 0
        mock_load.assert_not_called()
        assert capsys.readouterr().out.strip() == __version__

    def test_no_command(self, garm_env, capsys):
        assert _run() == EXIT_ERROR
        assert "GARM_COMMAND" in capsys.readouterr().err

    def test_get_instance_from_env(self, svc, capsys):
        provider, mock_load, mock_build, env = svc
        env.setenv("GARM_COMMAND", "GetInstance")
        env.setenv("GARM_INSTANCE_ID", "runner-1")
        provider.get_instance.return_value = _inst()
        assert _run() == 0
        mock_load.assert_called_once_with("/etc/garm/harvester.toml")
        mock_build.assert_called_once_with(mock_load.return_value, "ctrl-1")
        provider.get_instance.assert_called_once_with("runner-1")
        out = json.loads(capsys.readouterr().out)
        assert out["name"] == "runner-1"
        assert out["status"] == "running"

    def test_create_instance(self, svc, capsys):
        provider, _, _, env = svc
        env.setattr("sys.stdin", io.StringIO('{"name": "runner-1", "os_type": "linux"}'))
        provider.create_instance.return_value = _inst(status=InstanceStatus.PENDING_CREATE)
        assert _run(["--command", "CreateInstance"]) == 0
        assert json.loads(capsys.readouterr().out)["provider_id"] == "runner-1"

    def test_list_instances(self, svc, capsys):
        provider, _, _, env = svc
        env.setenv("GARM_POOL_ID", "pool-1")
        provider.list_instances.return_value = [_inst("a"), _inst("b")]
        assert _run(["--command", "ListInstances"]) == 0
        provider.list_instances.assert_called_once_with("pool-1")
        assert [i["name"] for i in json.loads(capsys.readouterr().out)] == ["a", "b"]

    def test_delete_prints_nothing(self, svc, capsys):
        provider, _, _, _ = svc
        assert _run(["--command", "DeleteInstance", "--instance-id", "runner-1"]) == 0
        provider.delete_instance.assert_called_once_with("runner-1")
        assert capsys.readouterr().out == ""

    def test_not_found_exit_code(self, svc, capsys):
        provider, _, _, _ = svc
        provider.get_instance.side_effect = InstanceNotFoundError("runner-1 not found")
        assert _run(["--command", "GetInstance", "--instance-id", "runner-1"]) == EXIT_NOT_FOUND
        assert "runner-1 not found" in capsys.readouterr().err

    def test_duplicate_exit_code(self, svc):
        provider, _, _, env = svc
        env.setattr("sys.stdin", io.StringIO('{"name": "runner-1"}'))
        provider.create_instance.side_effect = InstanceAlreadyExistsError("exists")
        assert _run(["--command", "CreateInstance"]) == EXIT_DUPLICATE

    def test_bad_stdin(self, svc):
        _, _, _, env = svc
        env.setattr("sys.stdin", io.StringIO("not json"))
        assert _run(["--command", "CreateInstance"]) == EXIT_ERROR

    def test_config_error(self, svc, capsys):
        _, mock_load, mock_build, _ = svc
        mock_load.side_effect = ConfigError("missing namespace")
        assert _run(["--command", "RemoveAllInstances"]) == EXIT_ERROR
        mock_build.assert_not_called()
        assert "missing namespace" in capsys.readouterr().err

    def test_missing_controller_id(self, svc):
        _, _, mock_build, env = svc
        env.delenv("GARM_CONTROLLER_ID")
        assert _run(["--command", "Stop", "--instance-id", "runner-1"]) == EXIT_ERROR
        mock_build.assert_not_called()

    def test_interrupted(self, svc):
        provider, _, _, _ = svc
        provider.start_instance.side_effect = KeyboardInterrupt("received signal 15")
        assert _run(["--command", "Start", "--instance-id", "runner-1"]) == EXIT_INTERRUPTED
