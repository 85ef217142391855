"""Remote command execution over SSH using paramiko."""
from __future__ import annotations

import errno
import logging
import os
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

import paramiko
from paramiko.ssh_exception import NoValidConnectionsError

from .config import SshConfig
from .errors import TransportError, classify_transport_text
from .models import RemoteExecResult
from .validation import assert_valid_ip

LOGGER = logging.getLogger(__name__)

DEFAULT_SSH_PORT = 22
DEFAULT_KEY_NAMES = ("id_ed25519", "id_ecdsa", "id_rsa")

_ERRNO_CODES = {
    errno.ECONNREFUSED: "ECONNREFUSED",
    errno.ETIMEDOUT: "ETIMEDOUT",
    errno.ECONNRESET: "ECONNRESET",
    errno.EHOSTUNREACH: "EHOSTUNREACH",
    errno.ENETUNREACH: "ENETUNREACH",
}


class RemoteExecutor(Protocol):
    """Anything able to run a shell command on a host."""

    def execute(
        self, host: str, command: str, *, port: int | None = None
    ) -> RemoteExecResult:
        """Run *command* on *host* and return its exit status and output."""
        ...

    def is_available(self) -> bool:
        """Return ``True`` when the transport can be used at all."""
        ...


def _host_key_policy(mode: str) -> paramiko.MissingHostKeyPolicy:
    if mode == "yes":
        return paramiko.RejectPolicy()
    return paramiko.AutoAddPolicy()


@dataclass(slots=True)
class SshExecutor:
    """Execute commands as ``<user>@<host>`` over a paramiko SSH session.

    ``strict_host_key_checking`` follows the OpenSSH option of the same name:
    ``accept-new`` trusts unknown hosts but rejects a changed key, ``yes``
    only connects to hosts already in ``known_hosts`` and ``no`` skips the
    check entirely.
    """

    user: str = "root"
    key_file: str | None = None
    connect_timeout: int = 10
    command_timeout: float = 300.0
    strict_host_key_checking: str = "accept-new"
    client_factory: Callable[[], paramiko.SSHClient] = field(
        default=paramiko.SSHClient, repr=False
    )

    @classmethod
    def from_config(cls, config: SshConfig) -> SshExecutor:
        """Build an executor from the ``ssh`` configuration section."""
        return cls(
            user=config.user,
            key_file=config.key_file,
            connect_timeout=config.connect_timeout,
            command_timeout=config.command_timeout,
            strict_host_key_checking=config.strict_host_key_checking,
        )

    def is_available(self) -> bool:
        """Return ``True`` when a key file or an SSH agent can authenticate."""
        if self.key_file:
            return Path(self.key_file).expanduser().is_file()
        if os.environ.get("SSH_AUTH_SOCK"):
            return True
        ssh_dir = Path.home() / ".ssh"
        return any((ssh_dir / name).is_file() for name in DEFAULT_KEY_NAMES)

    def execute(
        self, host: str, command: str, *, port: int | None = None
    ) -> RemoteExecResult:
        """Run *command* on *host* (optionally on a non-default SSH *port*).

        Raises :class:`TransportError` when the channel itself fails; a
        non-zero exit status of the remote command is returned, not raised.
        """
        assert_valid_ip(host)
        LOGGER.debug("Running remote command on %s: %s", host, command)
        client = self.client_factory()
        try:
            if self.strict_host_key_checking != "no":
                client.load_system_host_keys()
            client.set_missing_host_key_policy(_host_key_policy(self.strict_host_key_checking))
            client.connect(
                hostname=host,
                port=port or DEFAULT_SSH_PORT,
                username=self.user,
                key_filename=self.key_file,
                timeout=self.connect_timeout,
                banner_timeout=self.connect_timeout,
                auth_timeout=self.connect_timeout,
                allow_agent=True,
                look_for_keys=self.key_file is None,
            )
            _, stdout, stderr = client.exec_command(command, timeout=self.command_timeout)
            out = stdout.read().decode("utf-8", errors="replace")
            err = stderr.read().decode("utf-8", errors="replace")
            exit_code = stdout.channel.recv_exit_status()
        except paramiko.BadHostKeyException as exc:
            raise TransportError(
                f"Host key verification failed for {host}.", code="EHOSTKEY", host=host
            ) from exc
        except paramiko.AuthenticationException as exc:
            raise TransportError(
                f"{self.user}@{host}: Permission denied ({exc}).", code="EAUTH", host=host
            ) from exc
        except NoValidConnectionsError as exc:
            raise TransportError(
                f"Connection refused by {host}.", code="ECONNREFUSED", host=host
            ) from exc
        except TimeoutError as exc:
            raise TransportError(
                f"Command on {host} timed out after {self.command_timeout:g}s.",
                code="ETIMEDOUT",
                host=host,
            ) from exc
        except paramiko.SSHException as exc:
            message = str(exc) or f"SSH connection to {host} failed."
            raise TransportError(message, code=classify_transport_text(message), host=host) from exc
        except OSError as exc:
            message = str(exc) or f"SSH connection to {host} failed."
            code = _ERRNO_CODES.get(exc.errno or 0) or classify_transport_text(message)
            raise TransportError(message, code=code, host=host) from exc
        finally:
            client.close()
        return RemoteExecResult(exit_code=exit_code, stdout=out, stderr=err)


__all__ = ["DEFAULT_SSH_PORT", "RemoteExecutor", "SshExecutor"]
