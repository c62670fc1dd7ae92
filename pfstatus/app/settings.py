import dataclasses
import getpass
import json
import os
from collections.abc import Mapping
from typing import Any, Optional

from pfstatus.monitoring.inspector import DEFAULT_JOB_NAME_FILTER
from pfstatus.monitoring.types import FilePath


class SettingsError(Exception):
    """Raised when settings can't be read or are invalid."""


@dataclasses.dataclass(frozen=True)
class Settings:
    """Settings for inspecting jobs.

    Attributes
    ----------
    scratch_root : str, optional
        The directory holding the jobs' ``parflow_run_<job_id>`` working directories.
    user : str, optional
        The user whose jobs are listed when no job IDs are given.
    job_name_filter : str
        Text that must appear in a job's name for it to be listed.
    host : str, optional
        A remote host (e.g. a cluster login node) to inspect jobs on over SSH, or
        ``None`` to inspect jobs on the local machine.
    ssh_user : str, optional
        The user to log in to `host` as. Defaults to `user`.
    key_filename : str, optional
        Path to a private key for logging in to `host`.
    ssh_config_path : str, optional
        Path to an SSH config file for logging in to `host`.
    use_ssh_agent : bool
        Whether to use a running SSH agent for logging in to `host`.
    """

    scratch_root: Optional[str] = None
    user: Optional[str] = None
    job_name_filter: str = DEFAULT_JOB_NAME_FILTER
    host: Optional[str] = None
    ssh_user: Optional[str] = None
    key_filename: Optional[str] = None
    ssh_config_path: Optional[str] = None
    use_ssh_agent: bool = False

    @classmethod
    def field_names(cls) -> set[str]:
        return {field.name for field in dataclasses.fields(cls)}

    @classmethod
    def from_environment(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        """Make settings from the environment, taking the scratch root from ``$SCRATCH``
        and the user from ``$USER`` (or the login name if that isn't set)."""

        environ = os.environ if environ is None else environ
        user = environ.get("USER")
        if not user:
            try:
                user = getpass.getuser()
            except (KeyError, OSError):
                user = None

        return cls(scratch_root=environ.get("SCRATCH") or None, user=user)

    @classmethod
    def from_dict(cls, values: Mapping[str, Any]) -> "Settings":
        """Make settings from a mapping of field names to values.

        Raises
        ------
        SettingsError
            If the mapping contains names that aren't settings.
        """

        unknown = set(values) - cls.field_names()
        if unknown:
            raise SettingsError(
                f"Unknown settings: {', '.join(sorted(unknown))}. Expected one or more of "
                f"{', '.join(sorted(cls.field_names()))}."
            )

        return cls(**values)

    def merged(self, **overrides) -> "Settings":
        """A copy of these settings with any non-``None`` overrides applied."""

        return dataclasses.replace(
            self, **{k: v for k, v in overrides.items() if v is not None}
        )

    def to_dict(self) -> dict[str, Any]:
        return dataclasses.asdict(self)


def write_settings_json(settings: Settings, path: FilePath) -> None:
    """Serialise settings to a JSON file.

    Parameters
    ----------
    settings : Settings
        The settings to be serialised.
    path : FilePath
        Path to a text file to write the JSON-serialised settings to.
    """
    with open(path, mode="w") as f:
        json.dump(settings.to_dict(), f, indent=4)


def read_settings_json(path: FilePath) -> dict[str, Any]:
    """Read settings from a JSON file.

    Only the settings present in the file are returned, so that they can be layered on
    top of settings from elsewhere with ``Settings.merged``.

    Parameters
    ----------
    path : FilePath
        Path to a JSON file of the settings.

    Returns
    -------
    dict[str, Any]
        The settings stored in the JSON file.

    Raises
    ------
    SettingsError
        If the file can't be read, isn't a JSON object or contains unknown settings.
    """
    try:
        with open(path, mode="r") as f:
            values = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise SettingsError(f"Could not read settings from {path}: {e}") from None

    if not isinstance(values, dict):
        raise SettingsError(f"Expected settings in {path} to be a JSON object.")

    # Validates the names
    Settings.from_dict(values)

    return values
