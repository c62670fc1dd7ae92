from __future__ import annotations

import dataclasses
import logging
import pathlib
from collections.abc import Iterable, Sequence
from typing import Optional, Union

from pfstatus.monitoring.filesystem import Filesystem
from pfstatus.monitoring.hosts import HostCommandError
from pfstatus.monitoring.jobs import JobId, parse_job_ids
from pfstatus.monitoring.scheduler import Scheduler
from pfstatus.monitoring.solver import (
    COMPLETION_MARKER,
    NONE,
    UNKNOWN,
    SolverPhase,
    SolverStatus,
    evaluate_solver_phase,
    find_last_error,
    find_timing_value,
    parse_nonlinear_iterations,
    total_runtime,
)
from pfstatus.monitoring.types import FilePath

logger = logging.getLogger(__name__)

WORK_DIR_PREFIX = "parflow_run_"
"""Working directories are named ``<scratch_root>/parflow_run_<job_id>`` by the job
submission script."""

PRESSURE_FILE_PATTERN = "*.out.press.*.pfb"
SOLVER_LOG_PATTERN = "*.out.kinsol.log"
OUTPUT_LOG_PATTERN = "*.out.log"
OUTPUT_FILE_PATTERN = "*.out.txt"
TIMING_FILE_PATTERN = "*.out.timing.csv"

CLM_LABEL = "CLM"
IO_LABEL = "PFB I/O"

DEFAULT_JOB_NAME_FILTER = "ParFlow"
DEFAULT_NUM_LINES = 5
TAIL_WINDOW = 20
"""Number of lines at the end of a log that are searched for iteration counts and
errors."""

NOT_AVAILABLE = "N/A"


@dataclasses.dataclass(frozen=True)
class TimingMetrics:
    """Times (in seconds, as written by ParFlow) read from a job's timing file, each of
    which is ``'unknown'`` if it couldn't be found."""

    total_runtime: str = UNKNOWN
    clm_time: str = UNKNOWN
    io_time: str = UNKNOWN


@dataclasses.dataclass
class JobRecord:
    """The state of a job, as found by a single inspection.

    Records are not updated: a fresh record is made on each inspection. A job that was
    not found in the scheduler's live table has ``exists = False`` and all other fields
    left at their placeholder defaults.
    """

    id: JobId
    exists: bool
    runtime: str = NOT_AVAILABLE
    status_code: str = NOT_AVAILABLE
    timestep_count: int = 0
    solver_iterations: Union[int, str] = UNKNOWN
    last_error: str = NONE
    storage_used: str = UNKNOWN
    solver_status: SolverStatus = SolverStatus(SolverPhase.UNKNOWN)
    work_dir: Optional[str] = None
    solver_log: Optional[str] = None
    output_log: Optional[str] = None
    solver_log_tail: list[str] = dataclasses.field(default_factory=list)
    output_log_tail: list[str] = dataclasses.field(default_factory=list)
    timing: Optional[TimingMetrics] = None
    warnings: list[str] = dataclasses.field(default_factory=list)

    @property
    def solver_phase(self) -> SolverPhase:
        """(Read-only) The phase of the solver, without any elapsed time."""

        return self.solver_status.phase


class LayoutError(Exception):
    """Raised when a job's working directory doesn't have the expected layout, e.g.
    contains several files where exactly one is expected."""


class Inspector:
    """Inspects ParFlow jobs via the batch scheduler and their working directories.

    Parameters
    ----------
    scheduler : Scheduler
        The batch scheduler to query for live jobs.
    filesystem : Filesystem
        Read-only access to the filesystem holding the working directories.
    scratch_root : pfstatus.monitoring.types.FilePath
        The directory containing the jobs' working directories.
    user : str
        The user whose jobs are listed when no job IDs are given explicitly.
    job_name_filter : str, optional
        (Default: 'ParFlow') Text that must appear in a job's name for it to be listed
        when no job IDs are given explicitly.
    tail_window : int, optional
        (Default: 20) The number of lines at the end of the solver and output logs that
        are searched for iteration counts and errors.
    """

    def __init__(
        self,
        scheduler: Scheduler,
        filesystem: Filesystem,
        scratch_root: FilePath,
        user: str,
        job_name_filter: str = DEFAULT_JOB_NAME_FILTER,
        tail_window: int = TAIL_WINDOW,
    ):
        self._scheduler = scheduler
        self._fs = filesystem
        self._scratch_root = pathlib.PurePosixPath(scratch_root)
        self._user = user
        self._job_name_filter = job_name_filter
        self._tail_window = tail_window

    @property
    def job_name_filter(self) -> str:
        """(Read-only) Text required in job names when listing the user's jobs."""

        return self._job_name_filter

    def working_dir(self, job_id: JobId) -> pathlib.PurePosixPath:
        """The working directory of a job."""

        return self._scratch_root / f"{WORK_DIR_PREFIX}{job_id}"

    def resolve_job_set(
        self, explicit_ids: Union[str, Iterable[Union[str, JobId]], None] = None
    ) -> tuple[JobId, ...]:
        """Determine which jobs to inspect.

        Explicitly given IDs are returned as-is (in order, without repeats) without
        checking whether the scheduler knows about them. Otherwise the scheduler is
        asked for the user's jobs and those whose name contains the job name filter
        are returned.

        Parameters
        ----------
        explicit_ids : Union[str, Iterable[Union[str, JobId]]], optional
            (Default: None) Job IDs, separated by commas and/or whitespace.

        Returns
        -------
        tuple[JobId, ...]
            The IDs of the jobs to inspect, possibly empty.

        Raises
        ------
        ValueError
            If an explicitly given ID is not a valid job ID.
        HostCommandError
            If the scheduler could not be queried for the user's jobs.
        """

        if explicit_ids:
            job_ids = parse_job_ids(explicit_ids)
            if job_ids:
                return job_ids

        rows = self._scheduler.list_jobs(self._user)
        return tuple(
            dict.fromkeys(row.job_id for row in rows if self._job_name_filter in row.name)
        )

    def inspect_all(
        self, job_ids: Sequence[JobId], num_lines: int = DEFAULT_NUM_LINES
    ) -> list[JobRecord]:
        """Inspect each of the given jobs in turn."""

        return [self.inspect(job_id, num_lines) for job_id in job_ids]

    def inspect(
        self, job_id: Union[JobId, str, int], num_lines: int = DEFAULT_NUM_LINES
    ) -> JobRecord:
        """Inspect a single job.

        If the job isn't in the scheduler's live table then a record with
        ``exists = False`` is returned straight away, without touching the filesystem.
        Otherwise the job's working directory is examined for output and log files.
        Anything that can't be found is left at a placeholder value in the record.

        Parameters
        ----------
        job_id : Union[JobId, str, int]
            The ID of the job to inspect.
        num_lines : int, optional
            (Default: 5) The number of lines from the end of the solver and output logs
            to keep in the record.

        Returns
        -------
        JobRecord
            The state of the job.
        """

        job_id = JobId(job_id)
        try:
            row = self._scheduler.query_job(job_id)
        except HostCommandError as e:
            logger.warning("Could not query the scheduler for job %s: %s", job_id, e)
            row = None

        if row is None:
            logger.debug("Job %s not found in scheduler", job_id)
            return JobRecord(job_id, exists=False)

        work_dir = self.working_dir(job_id)
        record = JobRecord(
            job_id,
            exists=True,
            runtime=row.runtime or NOT_AVAILABLE,
            status_code=row.status_code or NOT_AVAILABLE,
            work_dir=str(work_dir),
        )
        try:
            self._inspect_work_dir(record, work_dir, num_lines)
        except HostCommandError as e:
            logger.warning("Could not inspect working directory %s: %s", work_dir, e)
            record.warnings.append(f"Inspection of {work_dir} incomplete: {e}")

        return record

    def _inspect_work_dir(
        self, record: JobRecord, work_dir: pathlib.PurePosixPath, num_lines: int
    ) -> None:
        """Fill in the parts of a record that come from the working directory."""

        record.timestep_count = len(self._fs.glob(work_dir, PRESSURE_FILE_PATTERN))

        window = self._tail_window
        n_tail = max(window, num_lines)
        record.solver_log = self._first_match(work_dir, SOLVER_LOG_PATTERN)
        if record.solver_log is not None:
            lines = self._fs.tail(record.solver_log, n_tail)
            record.solver_iterations = parse_nonlinear_iterations(lines[-window:])
            record.solver_log_tail = lines[-num_lines:] if num_lines > 0 else []

        record.output_log = self._first_match(work_dir, OUTPUT_LOG_PATTERN)
        if record.output_log is not None:
            lines = self._fs.tail(record.output_log, n_tail)
            record.last_error = find_last_error(lines[-window:])
            record.output_log_tail = lines[-num_lines:] if num_lines > 0 else []

        if self._fs.is_dir(work_dir):
            record.storage_used = self._fs.disk_usage(work_dir) or UNKNOWN

        self._inspect_solver(record, work_dir)

    def _inspect_solver(self, record: JobRecord, work_dir: pathlib.PurePosixPath) -> None:
        """Determine the solver phase and timing metrics of a job."""

        try:
            output_file = self._single_match(work_dir, OUTPUT_FILE_PATTERN)
        except LayoutError as e:
            self._warn(record, e)
            return None

        completed = output_file is not None and self._fs.contains(
            output_file, COMPLETION_MARKER
        )

        try:
            timing_file = self._single_match(work_dir, TIMING_FILE_PATTERN)
        except LayoutError as e:
            self._warn(record, e)
            timing_file = None
            if not completed:
                return None

        timing_lines = self._fs.read_lines(timing_file) if timing_file is not None else []
        if timing_file is None:
            last_line = None
        else:
            last_line = timing_lines[-1] if timing_lines else ""

        record.solver_status = evaluate_solver_phase(completed, last_line)
        if timing_file is not None:
            record.timing = TimingMetrics(
                total_runtime=total_runtime(last_line),
                clm_time=find_timing_value(timing_lines, CLM_LABEL),
                io_time=find_timing_value(timing_lines, IO_LABEL),
            )

        return None

    def _first_match(
        self, work_dir: pathlib.PurePosixPath, pattern: str
    ) -> Optional[str]:
        """The first file anywhere under `work_dir` matching `pattern`, if any."""

        matches = self._fs.glob(work_dir, pattern, recursive=True)
        return matches[0] if matches else None

    def _single_match(
        self, work_dir: pathlib.PurePosixPath, pattern: str
    ) -> Optional[str]:
        """The file in `work_dir` matching `pattern`, or ``None`` if there is no match.

        Raises
        ------
        LayoutError
            If more than one file matches.
        """

        matches = self._fs.glob(work_dir, pattern)
        if len(matches) > 1:
            raise LayoutError(
                f"Expected at most one file matching '{pattern}' in {work_dir} but found "
                f"{len(matches)}."
            )

        return matches[0] if matches else None

    @staticmethod
    def _warn(record: JobRecord, error: Exception) -> None:
        logger.warning("Job %s: %s", record.id, error)
        record.warnings.append(str(error))
