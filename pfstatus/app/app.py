import datetime
import logging
import time
from collections.abc import Callable, Iterable
from typing import Optional, Union

from pfstatus.app.report import no_jobs_message, render
from pfstatus.app.settings import Settings, SettingsError
from pfstatus.monitoring.filesystem import Filesystem, LocalFilesystem, RemoteFilesystem
from pfstatus.monitoring.hosts import HostCommandError, HostInterface, LocalHost, SSHHost
from pfstatus.monitoring.inspector import DEFAULT_NUM_LINES, Inspector, JobRecord
from pfstatus.monitoring.jobs import JobId
from pfstatus.monitoring.scheduler import Scheduler, SlurmScheduler

logger = logging.getLogger(__name__)

CLEAR_SCREEN = "\033[2J\033[H"


def make_host(settings: Settings) -> HostInterface:
    """Make the host on which scheduler and filesystem commands will be run: the local
    machine, or `settings.host` over SSH."""

    if settings.host is None:
        return LocalHost()

    return SSHHost(
        settings.host,
        user=settings.ssh_user or settings.user,
        key_filename=settings.key_filename,
        ssh_config_path=settings.ssh_config_path,
        use_ssh_agent=settings.use_ssh_agent,
    )


class App:
    """
    Provides a high-level interface for reporting on the status of ParFlow jobs.

    This class acts as a facade to the monitoring components, wiring together a host,
    the SLURM scheduler on that host, the host's filesystem and an ``Inspector``.

    Parameters
    ----------
    settings : Settings
        The settings to use. A scratch root and user must be set.
    host : HostInterface, optional
        (Default: None) The host to run commands on. If ``None`` then one is made from
        `settings` (see ``make_host``).
    scheduler : Scheduler, optional
        (Default: None) The scheduler to query. Defaults to SLURM on the host.
    filesystem : Filesystem, optional
        (Default: None) The filesystem holding working directories. Defaults to the local
        filesystem, or the host's filesystem when a remote host is set.

    Raises
    ------
    SettingsError
        If the scratch root or user is missing from the settings.
    """

    def __init__(
        self,
        settings: Settings,
        host: Optional[HostInterface] = None,
        scheduler: Optional[Scheduler] = None,
        filesystem: Optional[Filesystem] = None,
    ):
        if not settings.scratch_root:
            raise SettingsError(
                "No scratch directory set: set $SCRATCH or use the --scratch option."
            )
        if not settings.user:
            raise SettingsError("No user set: set $USER or use the --user option.")

        self._settings = settings
        self._host = host if host is not None else make_host(settings)
        self._scheduler = scheduler if scheduler is not None else SlurmScheduler(self._host)
        if filesystem is not None:
            self._filesystem = filesystem
        elif settings.host is None:
            self._filesystem = LocalFilesystem()
        else:
            self._filesystem = RemoteFilesystem(self._host)

        self._inspector = Inspector(
            self._scheduler,
            self._filesystem,
            scratch_root=settings.scratch_root,
            user=settings.user,
            job_name_filter=settings.job_name_filter,
        )

    @property
    def settings(self) -> Settings:
        """(Read-only) The settings the application was created with."""

        return self._settings

    @property
    def inspector(self) -> Inspector:
        """(Read-only) The inspector used to examine jobs."""

        return self._inspector

    def get_records(
        self,
        job_ids: Union[str, Iterable[Union[str, JobId]], None] = None,
        num_lines: int = DEFAULT_NUM_LINES,
    ) -> list[JobRecord]:
        """Inspect jobs, returning one record per job.

        If `job_ids` is empty or ``None`` then all of the user's jobs matching the job
        name filter are inspected. A failure to list the user's jobs is logged as a
        warning and treated as there being no jobs.
        """

        try:
            resolved_ids: tuple[JobId, ...] = self._inspector.resolve_job_set(job_ids)
        except HostCommandError as e:
            logger.warning("Could not list jobs for user %s: %s", self._settings.user, e)
            resolved_ids = tuple()

        return self._inspector.inspect_all(resolved_ids, num_lines)

    def report(
        self,
        job_ids: Union[str, Iterable[Union[str, JobId]], None] = None,
        num_lines: int = DEFAULT_NUM_LINES,
    ) -> str:
        """Inspect jobs and render the status report, or a message saying there are no
        jobs."""

        records = self.get_records(job_ids, num_lines)
        if not records:
            return no_jobs_message(self._settings.job_name_filter)

        return render(records, num_lines)

    def shutdown(self) -> None:
        """Release the connection to the host."""

        self._host.close()


def watch(
    make_report: Callable[[], str],
    interval: float,
    output: Callable[[str], None] = print,
    max_passes: Optional[int] = None,
    sleep: Optional[Callable[[float], None]] = None,
    clear: bool = True,
) -> None:
    """Repeatedly produce and output a report at a fixed interval, in the manner of the
    Unix ``watch`` command.

    Runs until interrupted (e.g. with Ctrl-C, which raises ``KeyboardInterrupt`` for the
    caller to handle) or until `max_passes` reports have been output.

    Parameters
    ----------
    make_report : Callable[[], str]
        Function producing the report text for a single pass.
    interval : float
        Seconds to wait after one report before producing the next.
    output : Callable[[str], None], optional
        (Default: print) Function used to output each report.
    max_passes : int, optional
        (Default: None) Stop after this many reports. ``None`` means never stop.
    sleep : Callable[[float], None], optional
        (Default: None) Function used to wait between passes. If ``None`` then
        ``time.sleep`` is used.
    clear : bool, optional
        (Default: True) Whether to clear the terminal before each report.
    """

    sleep = time.sleep if sleep is None else sleep
    n_passes = 0
    while max_passes is None or n_passes < max_passes:
        timestamp = datetime.datetime.now().strftime("%a %b %d %H:%M:%S %Y")
        header = f"Every {interval:g}s: pfstatus    {timestamp}\n"
        output((CLEAR_SCREEN if clear else "") + header + "\n" + make_report())
        n_passes += 1
        if max_passes is None or n_passes < max_passes:
            sleep(interval)
