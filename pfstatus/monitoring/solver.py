"""
Inference of ParFlow solver progress from the contents of a job's log and output files.

Everything in this module is a pure function of file contents (passed in as strings or
lists of lines); locating and reading the files is the job of
[`inspector`][pfstatus.monitoring.inspector].
"""

from __future__ import annotations

import dataclasses
import math
from collections.abc import Sequence
from enum import Enum
from typing import Optional, Union

COMPLETION_MARKER = "Problem solved"
"""Text written to the main output file by ParFlow once a run has finished."""

NONLINEAR_ITERATIONS_MARKER = "number of nonlinear iterations"
"""Text marking lines of the KINSOL log that report the nonlinear iteration count."""

ERROR_MARKER = "error"
"""Text (matched case-insensitively) marking error lines in the main output log."""

ZERO_ELAPSED = "0.000000"
"""The elapsed time ParFlow writes to the timing file before the solver starts."""

UNKNOWN = "unknown"
NONE = "none"
MAX_ERROR_LENGTH = 15


class SolverPhase(Enum):
    """The inferred lifecycle stage of the ParFlow solver within a job."""

    COMPLETE = "Complete"
    """The main output file reports that the problem was solved."""

    RUNNING = "Running"
    """The timing file reports a non-zero elapsed solver time."""

    STARTING = "Starting"
    """A timing file exists but no elapsed solver time has been recorded yet."""

    UNKNOWN = "Unknown"
    """There is no timing file to judge progress from."""


@dataclasses.dataclass(frozen=True)
class SolverStatus:
    """A solver phase, with the elapsed solver time in seconds (as written in the timing
    file) when the phase is ``SolverPhase.RUNNING``."""

    phase: SolverPhase
    elapsed: Optional[str] = None

    def __str__(self) -> str:
        if self.phase is SolverPhase.RUNNING and self.elapsed is not None:
            return f"{self.phase.value} ({self.elapsed}s)"
        else:
            return self.phase.value


def is_number(value: Optional[str]) -> bool:
    """Whether a string can be read as a finite floating point number. Strings such as
    ``'nan'`` or ``'inf'`` are not numbers for this purpose."""

    if value is None:
        return False

    try:
        return math.isfinite(float(value))
    except ValueError:
        return False


def csv_field(line: Optional[str], index: int) -> Optional[str]:
    """Get a field of a comma-separated line, stripped of whitespace, or ``None`` if the
    line doesn't have that many fields or the field is empty."""

    if line is None:
        return None

    fields = line.split(",")
    if index >= len(fields):
        return None

    return fields[index].strip() or None


def evaluate_solver_phase(
    output_contains_marker: bool, timing_last_line: Optional[str]
) -> SolverStatus:
    """Determine the solver phase from the output and timing files of a job.

    The following rules are applied in order, the first that matches giving the phase:

    1. ``COMPLETE`` if the main output file contains `COMPLETION_MARKER`.
    2. ``RUNNING`` if there is a timing file whose last line has a numeric second field
       that isn't `ZERO_ELAPSED`; the field is kept as the elapsed time.
    3. ``STARTING`` if there is a timing file (but rule 2 didn't apply, e.g. because the
       file only has a header or the last line is still being written).
    4. ``UNKNOWN`` otherwise.

    Parameters
    ----------
    output_contains_marker : bool
        Whether the main output file exists and contains `COMPLETION_MARKER`.
    timing_last_line : str, optional
        The last line of the timing file, or ``None`` if there is no timing file. An
        empty timing file should be given as the empty string.

    Returns
    -------
    SolverStatus
        The phase, with elapsed time if running.

    Examples
    --------
    >>> str(evaluate_solver_phase(False, "Total Runtime,12.5,0,0"))
    'Running (12.5s)'
    >>> str(evaluate_solver_phase(False, "Total Runtime,0.000000,0,0"))
    'Starting'
    """

    if output_contains_marker:
        return SolverStatus(SolverPhase.COMPLETE)

    if timing_last_line is not None:
        elapsed = csv_field(timing_last_line, 1)
        if is_number(elapsed) and elapsed != ZERO_ELAPSED:
            return SolverStatus(SolverPhase.RUNNING, elapsed)
        else:
            return SolverStatus(SolverPhase.STARTING)

    return SolverStatus(SolverPhase.UNKNOWN)


def parse_nonlinear_iterations(lines: Sequence[str]) -> Union[int, str]:
    """Get the most recent nonlinear iteration count from lines of a KINSOL log.

    The count is taken to be the last whitespace-separated token on the last line
    containing `NONLINEAR_ITERATIONS_MARKER`. If there is no such line, or the token
    isn't an integer, then `UNKNOWN` is returned.

    Examples
    --------
    >>> parse_nonlinear_iterations(["KINSolInit nni=    0", "  number of nonlinear iterations:  7"])
    7
    """

    for line in reversed(lines):
        if NONLINEAR_ITERATIONS_MARKER in line:
            tokens = line.split()
            try:
                return int(tokens[-1])
            except ValueError:
                return UNKNOWN

    return UNKNOWN


def find_last_error(lines: Sequence[str], max_length: int = MAX_ERROR_LENGTH) -> str:
    """Get the start of the most recent line mentioning an error, or `NONE`.

    Lines are matched against `ERROR_MARKER` case-insensitively, and the matching line
    is truncated to `max_length` characters.
    """

    for line in reversed(lines):
        if ERROR_MARKER in line.lower():
            return line[:max_length]

    return NONE


def find_timing_value(lines: Sequence[str], label: str) -> str:
    """Get the value (second field) of the row of a ParFlow timing file whose first field
    is `label`, e.g. ``'CLM'`` or ``'PFB I/O'``.

    If several rows have the label the last one is used. `UNKNOWN` is returned if there is
    no such row or its value isn't numeric.

    Examples
    --------
    >>> find_timing_value(["Timer,Time (s)", "CLM,4.250000", "PFB I/O,0.5"], "CLM")
    '4.250000'
    """

    for line in reversed(lines):
        if csv_field(line, 0) == label:
            value = csv_field(line, 1)
            return value if is_number(value) else UNKNOWN

    return UNKNOWN


def total_runtime(timing_last_line: Optional[str]) -> str:
    """The total runtime reported in the last line of a timing file, or `UNKNOWN`."""

    value = csv_field(timing_last_line, 1)
    return value if is_number(value) else UNKNOWN
