import getpass
import logging
from abc import ABC, abstractmethod
from typing import Optional

from fabric import Config, Connection
from invoke import Context
from paramiko.ssh_exception import AuthenticationException, SSHException

from pfstatus.monitoring.types import FilePath

logger = logging.getLogger(__name__)


class HostInterface(ABC):
    """
    Abstract base class for a machine on which shell commands can be run.

    The scheduler and filesystem adapters don't care whether they are talking to the
    machine ``pfstatus`` runs on or to a cluster login node reached over SSH; they only
    need a way of running a command and reading its standard output. Implementations
    should provide the following methods:

    - run_command
    - close
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """A human-readable name for the host, used in messages."""

        raise NotImplementedError

    @abstractmethod
    def run_command(
        self, command: str, allow_failure: bool = False, strip: bool = True
    ) -> str:
        """Run a shell command and return the contents of standard output.

        Parameters
        ----------
        command : str
            The command to run. It is interpreted by the host's shell.
        allow_failure : bool, optional
            (Default: False) If ``True`` then a non-zero exit status is not treated as an
            error and whatever was written to standard output is returned.
        strip : bool, optional
            (Default: True) Whether to strip leading/trailing whitespace from the output.
            If ``False``, only the final newline character is removed.

        Raises
        ------
        HostCommandError
            If the command could not be run, or exited with non-zero status and
            `allow_failure` is ``False``.
        """

        raise NotImplementedError

    def close(self) -> None:
        return None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        self.close()


class _InvokeRunnerMixin:
    """Shared command running for runners with the ``invoke`` ``run`` API (both
    ``invoke.Context`` and ``fabric.Connection``)."""

    _runner = None

    def run_command(
        self, command: str, allow_failure: bool = False, strip: bool = True
    ) -> str:
        logger.debug("Running on %s: %s", self.name, command)
        try:
            res = self._runner.run(command, hide=True, warn=allow_failure, in_stream=False)
        except Exception as e:
            raise HostCommandError(
                f"Command '{command}' failed on {self.name}: {e}"
            ) from None

        output = str(res.stdout)
        return output.strip() if strip else output.removesuffix("\n")


class LocalHost(_InvokeRunnerMixin, HostInterface):
    """Runs commands on the local machine, e.g. when ``pfstatus`` is itself run on a
    cluster login node."""

    def __init__(self):
        self._runner = Context()

    @property
    def name(self) -> str:
        return "localhost"


class SSHHost(_InvokeRunnerMixin, HostInterface):
    """
    Runs commands on a remote machine over SSH.

    The host can be authenticated with using either a key file, an SSH config path, or
    via an SSH agent. If none of these methods are provided, a password is prompted for.

    Parameters
    ----------
    host : str
        The hostname or IP address of the SSH server (or a host alias when using an SSH
        config file).
    user : str, optional
        The username to authenticate with. Required unless `ssh_config_path` is given.
    key_filename : pfstatus.monitoring.types.FilePath, optional
        The path to the SSH private key file to authenticate with the SSH server.
    ssh_config_path : pfstatus.monitoring.types.FilePath, optional
        The path to the SSH configuration file.
    use_ssh_agent : bool, optional
        If ``True``, use SSH agent for authentication. Defaults to ``False``.
    max_attempts : int, optional
        The number of password attempts allowed. Defaults to ``3``.

    Raises
    ------
    ValueError
        If more than one method of authentication is provided, or if no user is
        given when not using an SSH config file.
    HostCommandError
        If a connection to the server could not be established.
    """

    def __init__(
        self,
        host: str,
        user: Optional[str] = None,
        key_filename: Optional[FilePath] = None,
        ssh_config_path: Optional[FilePath] = None,
        use_ssh_agent: Optional[bool] = False,
        max_attempts: int = 3,
    ):
        self.max_attempts = max_attempts

        # Check if more than one method is provided
        if (
            sum(
                [
                    key_filename is not None,
                    ssh_config_path is not None,
                    bool(use_ssh_agent),
                ]
            )
            > 1
        ):
            raise ValueError(
                "Only one method of authentication should be provided. Please specify either "
                "'key_filename', 'ssh_config_path' or set 'use_ssh_agent' to True."
            )

        if ssh_config_path is None and not user:
            raise ValueError(
                f"A user name is required to connect to {host} unless an SSH config file "
                "is used."
            )

        if key_filename is not None:
            self._runner = Connection(
                f"{user}@{host}", connect_kwargs={"key_filename": str(key_filename)}
            )
        elif ssh_config_path is not None:
            ssh_config = Config(overrides={"ssh_config_path": str(ssh_config_path)})
            self._runner = Connection(host, config=ssh_config)
        elif use_ssh_agent:
            self._runner = Connection(f"{user}@{host}")
        else:
            self._init_with_password(user, host)

        self._check_connection()

    @property
    def name(self) -> str:
        return str(self._runner.original_host)

    def _check_connection(self):
        try:
            self._runner.run('echo "Testing connection"', hide=True)
        except Exception as e:
            raise HostCommandError(f"Could not connect to {self.name}: {str(e)}") from None

        logger.info("Connection to %s established.", self.name)

    def _init_with_password(self, user: str, host: str):
        for attempt in range(1, self.max_attempts + 1):
            password = getpass.getpass(prompt=f"Password for {user}@{host}: ")
            try:
                self._runner = Connection(
                    f"{user}@{host}", connect_kwargs={"password": password}
                )
                # Check connection by running a simple command
                self._runner.run('echo "Testing connection"', hide=True)
                return

            except AuthenticationException:
                if attempt < self.max_attempts:  # Don't say this on the last attempt
                    print("Failed to authenticate. Please try again.")
                else:
                    print("Maximum number of attempts exceeded.")
                    raise
            except SSHException as e:
                print(f"Could not connect to {host}: {str(e)}")
                raise
            except Exception as e:
                # E.g. socket errors for unknown or unreachable hosts
                raise HostCommandError(
                    f"Could not connect to {host}: {str(e)}"
                ) from None

    def close(self) -> None:
        self._runner.close()


class HostCommandError(Exception):
    """Raised when a command could not be run on a host, or exited with an error."""

    pass
