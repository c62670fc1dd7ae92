import dataclasses
import logging
import shlex
from abc import ABC, abstractmethod
from typing import Optional

from pfstatus.monitoring.hosts import HostInterface
from pfstatus.monitoring.jobs import JobId

logger = logging.getLogger(__name__)


@dataclasses.dataclass(frozen=True)
class SchedulerRow:
    """One job as reported in the scheduler's live job table.

    Attributes
    ----------
    job_id : JobId
        The ID of the job.
    name : str
        The name the job was submitted under.
    user : str
        The user owning the job.
    runtime : str
        The elapsed time of the job, exactly as reported by the scheduler (e.g.
        ``'1-02:03:04'``).
    status_code : str
        The scheduler's short state code for the job (e.g. ``'R'``, ``'PD'``, ``'CG'``).
    """

    job_id: JobId
    name: str
    user: str
    runtime: str
    status_code: str


SQUEUE_FIELD_SEPARATOR = "|"
SQUEUE_FORMAT = SQUEUE_FIELD_SEPARATOR.join(["%i", "%j", "%u", "%M", "%t"])
"""Output format requested from ``squeue``: job ID, job name, user, elapsed time and
compact state, separated by ``|``."""


def parse_squeue_output(text: str) -> list[SchedulerRow]:
    """Parse the output of ``squeue --noheader --format`` with `SQUEUE_FORMAT`.

    This is the only place where assumptions about the layout of scheduler output are
    made. Blank lines are ignored, as are lines that don't have the expected number of
    fields or whose first field is not a valid job ID; such lines are logged at debug
    level.

    Examples
    --------
    >>> parse_squeue_output("1234|ParFlow_run|jdoe|1:02:03|R")
    [SchedulerRow(job_id=JobId('1234'), name='ParFlow_run', user='jdoe', runtime='1:02:03', status_code='R')]
    """

    rows = []
    n_fields = SQUEUE_FORMAT.count(SQUEUE_FIELD_SEPARATOR) + 1
    for line in text.splitlines():
        if not line.strip():
            continue

        fields = [field.strip() for field in line.split(SQUEUE_FIELD_SEPARATOR)]
        if len(fields) != n_fields:
            logger.debug("Ignoring unexpected scheduler output line: %r", line)
            continue

        job_id, name, user, runtime, status_code = fields
        try:
            rows.append(SchedulerRow(JobId(job_id), name, user, runtime, status_code))
        except ValueError:
            logger.debug("Ignoring scheduler output line with invalid job ID: %r", line)

    return rows


class Scheduler(ABC):
    """Abstract interface to a batch scheduler's table of live jobs."""

    @abstractmethod
    def list_jobs(self, user: str) -> list[SchedulerRow]:
        """List all live jobs owned by a user."""

        raise NotImplementedError

    @abstractmethod
    def query_job(self, job_id: JobId) -> Optional[SchedulerRow]:
        """Get the row for a single job, or ``None`` if the job is not in the live
        table."""

        raise NotImplementedError


class SlurmScheduler(Scheduler):
    """Queries the SLURM ``squeue`` command on a host.

    Parameters
    ----------
    host : HostInterface
        The machine on which to run ``squeue``, typically a cluster login node.
    squeue : str, optional
        (Default: 'squeue') The ``squeue`` executable to invoke.
    """

    def __init__(self, host: HostInterface, squeue: str = "squeue"):
        self._host = host
        self._squeue = squeue

    def _squeue_command(self, *args: str) -> str:
        return " ".join(
            [self._squeue, "--noheader"]
            + [shlex.quote(arg) for arg in args]
            + ["--format", shlex.quote(SQUEUE_FORMAT)]
        )

    def list_jobs(self, user: str) -> list[SchedulerRow]:
        """List all live jobs owned by `user`.

        Raises
        ------
        HostCommandError
            If ``squeue`` could not be run successfully.
        """

        output = self._host.run_command(self._squeue_command("--user", user))
        return parse_squeue_output(output)

    def query_job(self, job_id: JobId) -> Optional[SchedulerRow]:
        """Get the live table row for `job_id`.

        ``squeue`` exits with an error for IDs it no longer knows about; this is treated
        in the same way as an empty result, i.e. the job is reported as not found.
        The whole job is queried and the row with exactly the same ID is picked, as
        ``squeue --jobs`` doesn't accept every form of ID that it prints.
        """

        output = self._host.run_command(
            self._squeue_command("--jobs", job_id.base_id), allow_failure=True
        )
        rows = [row for row in parse_squeue_output(output) if row.job_id == job_id]
        return rows[0] if rows else None

