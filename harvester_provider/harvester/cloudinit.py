"""Runner boot payload.

Renders the first-boot script that installs and registers the runner, and
decides whether it travels inline in the VM spec or in a companion Secret.
"""

from __future__ import annotations

import shlex
import string
import uuid
from dataclasses import dataclass
from typing import Any
from urllib.parse import urlsplit

from harvester_provider.base.exceptions import ValidationError
from harvester_provider.base.params import BootstrapRequest

DEFAULT_SETUP_USER = "runner"
DEFAULT_RUNNER_INSTALL_PATH = "/opt/actions-runner"

# NoCloud user data above this many bytes goes into a Secret.
CLOUD_INIT_INLINE_LIMIT = 2048

SECRET_USERDATA_KEY = "userdata"
CLOUD_INIT_SECRET_SUFFIX = "cloudinit"

CALLBACK_MAX_ATTEMPTS = 5
CALLBACK_RETRY_DELAY = 10


class _ScriptTemplate(string.Template):
    # The script is full of shell "$" expansions; bind with "@" instead.
    delimiter = "@"


LINUX_RUNNER_SCRIPT = _ScriptTemplate("""\
#!/bin/bash
set -euxo pipefail

export RUNNER_NAME=@runner_name
export GITHUB_RUNNER_REGISTRATION_TOKEN=@instance_token
export CALLBACK_URL=@callback_url
export RUNNER_DOWNLOAD_URL=@download_url
export RUNNER_LABELS=@labels
export RUNNER_TEMP_DIR=@temp_dir
export RUNNER_INSTALL_PATH=@install_path
export SETUP_USER=@setup_user
export RUNNER_GROUP="${SETUP_USER}"

if ! id -u "${SETUP_USER}"; then
    sudo useradd --create-home --shell /bin/bash "${SETUP_USER}"
    sudo usermod -aG sudo "${SETUP_USER}"
    echo "${SETUP_USER} ALL=(ALL) NOPASSWD:ALL" | sudo tee "/etc/sudoers.d/90-${SETUP_USER}"
fi
@ssh_keys_block
if ! command -v docker &> /dev/null; then
    echo "Installing Docker..."
    sudo apt-get update -y
    sudo apt-get install -y apt-transport-https ca-certificates curl software-properties-common gnupg
    curl -fsSL https://download.docker.com/linux/ubuntu/gpg | sudo gpg --dearmor -o /usr/share/keyrings/docker-archive-keyring.gpg
    echo "deb [arch=$(dpkg --print-architecture) signed-by=/usr/share/keyrings/docker-archive-keyring.gpg] https://download.docker.com/linux/ubuntu $(lsb_release -cs) stable" | sudo tee /etc/apt/sources.list.d/docker.list > /dev/null
    sudo apt-get update -y
    sudo apt-get install -y docker-ce docker-ce-cli containerd.io
    sudo usermod -aG docker "${SETUP_USER}"
    echo "Docker installed."
else
    echo "Docker already installed."
fi

sudo mkdir -p "${RUNNER_INSTALL_PATH}" "${RUNNER_TEMP_DIR}"
sudo chown -R "${SETUP_USER}:${RUNNER_GROUP}" "${RUNNER_INSTALL_PATH}" "${RUNNER_TEMP_DIR}"

cd "${RUNNER_TEMP_DIR}"

echo "Downloading runner from ${RUNNER_DOWNLOAD_URL}..."
sudo -u "${SETUP_USER}" -E curl -L -o runner.tar.gz "${RUNNER_DOWNLOAD_URL}"
sudo -u "${SETUP_USER}" -E tar xzf ./runner.tar.gz -C "${RUNNER_INSTALL_PATH}"
sudo -u "${SETUP_USER}" -E rm -f ./runner.tar.gz

cd "${RUNNER_INSTALL_PATH}"
echo "Configuring runner..."
sudo -u "${SETUP_USER}" -E ./config.sh --unattended \\
    --name "${RUNNER_NAME}" \\
    --url @registration_url \\
    --token "${GITHUB_RUNNER_REGISTRATION_TOKEN}" \\
    --labels "${RUNNER_LABELS}" \\
    @runner_group_flag--work "_work" \\
    --replace \\
    --ephemeral

echo "Setting up runner service..."
sudo ./svc.sh install "${SETUP_USER}"
sudo ./svc.sh start

if [ -n "${CALLBACK_URL}" ] && [ -n "${GITHUB_RUNNER_REGISTRATION_TOKEN}" ]; then
    echo "Sending callback to GARM..."
    CALLBACK_DATA="{\\"status\\": \\"success\\", \\"runner_name\\": \\"${RUNNER_NAME}\\", \\"message\\": \\"Runner configured successfully\\"}"
    MAX_ATTEMPTS=@callback_attempts
    RETRY_DELAY=@callback_delay
    for i in $(seq 1 $MAX_ATTEMPTS); do
        HTTP_STATUS=$(curl -s -o /dev/null -w "%{http_code}" \\
            -X POST \\
            -H "Content-Type: application/json" \\
            -H "X-Garm-Token: ${GITHUB_RUNNER_REGISTRATION_TOKEN}" \\
            -d "${CALLBACK_DATA}" \\
            "${CALLBACK_URL}" || true)

        if [ "${HTTP_STATUS}" = "200" ] || [ "${HTTP_STATUS}" = "202" ]; then
            echo "Callback successful (HTTP ${HTTP_STATUS})."
            break
        fi
        echo "Callback attempt ${i} failed (HTTP ${HTTP_STATUS}). Retrying in ${RETRY_DELAY}s..."
        if [ "${i}" -eq "${MAX_ATTEMPTS}" ]; then
            echo "Max callback attempts reached. Failed to send status to GARM."
            break
        fi
        sleep "${RETRY_DELAY}"
    done
else
    echo "Callback URL or Instance Token not set, skipping callback."
fi

echo "Cloud-init script finished."
""")

_SSH_KEYS_TEMPLATE = _ScriptTemplate("""
SETUP_HOME=$(getent passwd "${SETUP_USER}" | cut -d: -f6)
sudo mkdir -p "${SETUP_HOME}/.ssh"
sudo tee -a "${SETUP_HOME}/.ssh/authorized_keys" > /dev/null <<'GARM_SSH_KEYS'
@keys
GARM_SSH_KEYS
sudo chown -R "${SETUP_USER}:${RUNNER_GROUP}" "${SETUP_HOME}/.ssh"
sudo chmod 700 "${SETUP_HOME}/.ssh"
sudo chmod 600 "${SETUP_HOME}/.ssh/authorized_keys"
""")

SCRIPT_TEMPLATES: dict[str, _ScriptTemplate] = {
    "linux": LINUX_RUNNER_SCRIPT,
}


def parse_repo_url(repo_url: str) -> tuple[str, str, str]:
    """Split a repository URL into ``(base_url, owner, name)``.

    ``name`` is empty for organization-level URLs such as
    ``https://github.com/my-org``.

    Raises:
        ValidationError: If the URL has no owner path segment.
    """
    target = repo_url.strip()
    if "://" not in target:
        target = f"https://{target}"
    parts = urlsplit(target)
    segments = [s for s in parts.path.split("/") if s]
    if not parts.netloc or not segments:
        raise ValidationError(f"Invalid repository URL format: '{repo_url}'")
    owner = segments[0]
    name = "/".join(segments[1:])
    return f"{parts.scheme}://{parts.netloc}", owner, name


def _ssh_keys_block(keys: list[str]) -> str:
    cleaned = [k.strip() for k in keys if k and k.strip()]
    if not cleaned:
        return ""
    return _SSH_KEYS_TEMPLATE.substitute(keys="\n".join(cleaned))


def render_runner_script(
    request: BootstrapRequest,
    download_url: str,
    *,
    setup_user: str = DEFAULT_SETUP_USER,
    install_path: str = DEFAULT_RUNNER_INSTALL_PATH,
) -> str:
    """Render the runner bootstrap script for *request*.

    Args:
        request: Bootstrap parameters sent by GARM.
        download_url: URL of the runner tarball chosen for this OS/arch.
        setup_user: Account the runner service runs as.
        install_path: Where the runner is unpacked.

    Returns:
        The complete shell script.

    Raises:
        ValidationError: Unsupported OS type, repository URL without owner,
            or no download URL.
    """
    template = SCRIPT_TEMPLATES.get(request.os_type.lower())
    if template is None:
        raise ValidationError(f"Unsupported OS type for cloud-init: '{request.os_type}'")
    if not download_url:
        raise ValidationError(f"No runner download URL found for '{request.name}'")

    base_url, owner, name = parse_repo_url(request.repo_url)
    registration_url = f"{base_url}/{owner}/{name}" if name else f"{base_url}/{owner}"
    runner_group_flag = (
        f"--runnergroup {shlex.quote(request.github_runner_group)} \\\n    "
        if request.github_runner_group
        else ""
    )

    return template.substitute(
        runner_name=shlex.quote(request.name),
        instance_token=shlex.quote(request.instance_token),
        callback_url=shlex.quote(request.callback_url),
        download_url=shlex.quote(download_url),
        labels=shlex.quote(",".join(request.labels)),
        temp_dir=shlex.quote(f"/tmp/runner-{uuid.uuid4()}"),
        install_path=shlex.quote(install_path),
        setup_user=shlex.quote(setup_user),
        ssh_keys_block=_ssh_keys_block(request.ssh_keys),
        registration_url=shlex.quote(registration_url),
        runner_group_flag=runner_group_flag,
        callback_attempts=CALLBACK_MAX_ATTEMPTS,
        callback_delay=CALLBACK_RETRY_DELAY,
    )


@dataclass(frozen=True)
class BootPayload:
    """Cloud-init user data, either inline or referenced through a Secret."""

    user_data: str
    secret_name: str | None = None

    @property
    def externalized(self) -> bool:
        return self.secret_name is not None

    def volume_source(self) -> dict[str, Any]:
        """``cloudInitNoCloud`` volume source for the VM spec."""
        if self.secret_name is not None:
            return {"secretRef": {"name": self.secret_name}}
        return {"userData": self.user_data}

    def secret_manifest(
        self, namespace: str, owner_references: list[dict[str, Any]]
    ) -> dict[str, Any]:
        """Companion Secret holding the user data.

        Raises:
            ValueError: If the payload is carried inline.
        """
        if self.secret_name is None:
            raise ValueError("Inline boot payloads have no companion Secret")
        return {
            "apiVersion": "v1",
            "kind": "Secret",
            "metadata": {
                "name": self.secret_name,
                "namespace": namespace,
                "ownerReferences": owner_references,
            },
            "stringData": {SECRET_USERDATA_KEY: self.user_data},
        }


def place_user_data(vm_name: str, user_data: str) -> BootPayload:
    """Inline *user_data* when it fits, otherwise point at a Secret."""
    if len(user_data.encode("utf-8")) > CLOUD_INIT_INLINE_LIMIT:
        return BootPayload(
            user_data=user_data,
            secret_name=f"{vm_name.lower()}-{CLOUD_INIT_SECRET_SUFFIX}",
        )
    return BootPayload(user_data=user_data)


def build_boot_payload(request: BootstrapRequest, download_url: str) -> BootPayload:
    """Render the runner script and choose where it travels."""
    return place_user_data(request.name, render_runner_script(request, download_url))
