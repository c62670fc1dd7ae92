from __future__ import annotations

import re
from collections.abc import Iterable
from typing import Union


class JobId:
    """A unique identifier for a SLURM job.

    A job ID consists of digits, optionally followed by one of:

    - an underscore and further digits identifying a task within a job array (e.g.
      ``'1234_7'``);
    - an underscore and a bracketed range of tasks, as shown by ``squeue`` for array
      tasks that are still pending (e.g. ``'1234_[1-3]'`` or ``'1234_[1,4-6%2]'``);
    - a ``+`` and digits identifying a component of a heterogeneous job (e.g.
      ``'77+0'``).

    A string representation of the ID can be obtained using the ``str`` function.

    Parameters
    ----------
    job_id : Union[str, int, JobId]
        A non-negative integer, a string of the form described above, or another instance
        of ``JobId``.
    """

    _PATTERN = re.compile(r"([0-9]+)(_[0-9]+|_\[[0-9,%\-]+\]|\+[0-9]+)?")

    def __init__(self, job_id: Union[str, int, JobId]):
        self._job_id = self._parse(job_id)

    @classmethod
    def _parse(cls, job_id) -> str:
        job_id_str = str(job_id).strip() if not isinstance(job_id, JobId) else str(job_id)
        if cls._PATTERN.fullmatch(job_id_str):
            return job_id_str
        else:
            raise ValueError(
                "Expected 'job_id' to define a SLURM job ID consisting of digits "
                "(optionally followed by an array index or range, or by '+' and a "
                f"component number), but received '{str(job_id)}' instead."
            )

    @property
    def base_id(self) -> str:
        """(Read-only) The ID of the job as a whole, without any array index, array
        range or heterogeneous job component, e.g. ``'1234'`` for ``'1234_[1-3]'``."""

        return self._PATTERN.fullmatch(self._job_id).group(1)

    def __str__(self) -> str:
        return self._job_id

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({repr(self._job_id)})"

    def __eq__(self, other) -> bool:
        return isinstance(other, self.__class__) and self._job_id == str(other)

    def __hash__(self):
        return hash(self._job_id)


# Commas inside an array range don't separate IDs
_SEPARATOR = re.compile(r"[,\s]+(?![^\[]*\])")


def split_job_ids(job_ids: Union[str, JobId, Iterable[Union[str, JobId]]]) -> list[str]:
    """Split comma- and/or whitespace-separated job IDs into their components.

    Items that are already ``JobId``s are kept whole.

    Examples
    --------
    >>> split_job_ids("1234,5678 91")
    ['1234', '5678', '91']
    >>> split_job_ids(["1,2", "3"])
    ['1', '2', '3']
    >>> split_job_ids("1234_[1,3-5],77+0")
    ['1234_[1,3-5]', '77+0']
    """

    if isinstance(job_ids, (str, JobId)):
        job_ids = [job_ids]

    return [part for item in job_ids for part in _SEPARATOR.split(str(item)) if part]


def parse_job_ids(
    job_ids: Union[str, JobId, Iterable[Union[str, JobId]]]
) -> tuple[JobId, ...]:
    """Parse job IDs given as strings or ``JobId``s into a tuple of ``JobId``s.

    Repeated IDs are removed, keeping the order in which IDs first appear.

    Raises
    ------
    ValueError
        If one of the supplied IDs does not define a valid job ID.
    """

    parsed = [JobId(id_) for id_ in split_job_ids(job_ids)]
    return tuple(dict.fromkeys(parsed))
