"""
Rendering of inspected jobs as a human-readable status report.

A report has two parts, always produced together: a summary table with one row per job,
and a detailed section with one block per job showing the ends of the job's logs, the
solver status and timing metrics. Jobs appear in the same order in both parts.
"""

from collections import OrderedDict
from collections.abc import Sequence
from typing import Optional

from pfstatus.app.table import make_table
from pfstatus.monitoring.inspector import (
    DEFAULT_JOB_NAME_FILTER,
    DEFAULT_NUM_LINES,
    NOT_AVAILABLE,
    JobRecord,
)
from pfstatus.monitoring.solver import UNKNOWN

RULE = "-" * 80
INDENT = "  "
NOT_FOUND = "not found"

JOBID_HEADER = "Job ID"
RUNTIME_HEADER = "Runtime"
TIMESTEPS_HEADER = "Timesteps"
ITERATIONS_HEADER = "Solver Its"
ERROR_HEADER = "Last Error"
STORAGE_HEADER = "Storage"
STATUS_HEADER = "Status"


def _summary_row(record: JobRecord) -> dict[str, str]:
    if not record.exists:
        return {
            JOBID_HEADER: str(record.id),
            RUNTIME_HEADER: NOT_AVAILABLE,
            TIMESTEPS_HEADER: NOT_AVAILABLE,
            ITERATIONS_HEADER: NOT_AVAILABLE,
            ERROR_HEADER: NOT_AVAILABLE,
            STORAGE_HEADER: NOT_AVAILABLE,
            STATUS_HEADER: NOT_FOUND,
        }

    return {
        JOBID_HEADER: str(record.id),
        RUNTIME_HEADER: record.runtime,
        TIMESTEPS_HEADER: str(record.timestep_count),
        ITERATIONS_HEADER: str(record.solver_iterations),
        ERROR_HEADER: record.last_error,
        STORAGE_HEADER: record.storage_used,
        STATUS_HEADER: record.status_code,
    }


def render_summary(records: Sequence[JobRecord]) -> str:
    """Render the summary table, framed by horizontal rules."""

    rows = [_summary_row(record) for record in records]
    headers = [
        JOBID_HEADER,
        RUNTIME_HEADER,
        TIMESTEPS_HEADER,
        ITERATIONS_HEADER,
        ERROR_HEADER,
        STORAGE_HEADER,
        STATUS_HEADER,
    ]
    data = OrderedDict([(h, tuple(row[h] for row in rows)) for h in headers])
    header, *body = [
        line.rstrip() for line in make_table(data, separator=" | ").split("\n")
    ]

    return "\n".join([RULE, header, RULE] + body + [RULE])


def _indented(lines: Sequence[str], depth: int) -> list[str]:
    return [INDENT * depth + line for line in lines]


def _with_unit(value: str) -> str:
    return value if value == UNKNOWN else f"{value}s"


def _log_section(
    title: str,
    path: Optional[str],
    tail: Sequence[str],
    num_lines: int,
    missing_message: str,
) -> list[str]:
    lines = [f"{INDENT}{title} ({path or NOT_AVAILABLE}):"]
    if path is None:
        return lines + _indented([missing_message], 2)

    return lines + _indented(tail[-num_lines:] if num_lines > 0 else [], 2)


def render_details(record: JobRecord, num_lines: int = DEFAULT_NUM_LINES) -> str:
    """Render the detailed block for a single job."""

    if not record.exists:
        return f"Job {record.id}: {NOT_FOUND} in scheduler"

    lines = [f"Job {record.id}:"]

    lines += _log_section(
        "Latest Solver Output",
        record.solver_log,
        record.solver_log_tail,
        num_lines,
        "No solver log found",
    )
    lines += _log_section(
        "Latest Output",
        record.output_log,
        record.output_log_tail,
        num_lines,
        "No output log found",
    )

    lines += _indented([f"Solver Status: {record.solver_status}"], 1)

    if record.timing is not None:
        lines += _indented(["Performance Metrics:"], 1)
        lines += _indented(
            [
                f"Total Runtime: {_with_unit(record.timing.total_runtime)}",
                f"CLM Time: {_with_unit(record.timing.clm_time)}",
                f"I/O Time: {_with_unit(record.timing.io_time)}",
            ],
            2,
        )

    if record.warnings:
        lines += _indented(["Warnings:"], 1)
        lines += _indented(record.warnings, 2)

    return "\n".join(lines)


def render(records: Sequence[JobRecord], num_lines: int = DEFAULT_NUM_LINES) -> str:
    """Render the full status report for a sequence of inspected jobs.

    Parameters
    ----------
    records : Sequence[JobRecord]
        The inspected jobs, in the order they should be shown.
    num_lines : int, optional
        (Default: 5) The maximum number of lines to show from the end of each job's
        solver and output logs.

    Returns
    -------
    str
        The summary table followed by the detailed section.
    """

    details = [RULE]
    for record in records:
        details += [render_details(record, num_lines), RULE]

    return "\n".join([render_summary(records), "", "Detailed Status:"] + details)


def no_jobs_message(job_name_filter: str = DEFAULT_JOB_NAME_FILTER) -> str:
    """The message shown when there are no jobs to report on."""

    return f"No running {job_name_filter} jobs found"
