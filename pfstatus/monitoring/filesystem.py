import logging
import math
import os
import pathlib
import shlex
from abc import ABC, abstractmethod
from typing import Optional

from pfstatus.monitoring.hosts import HostInterface
from pfstatus.monitoring.types import FilePath

logger = logging.getLogger(__name__)


class Filesystem(ABC):
    """
    Abstract base class for read-only access to the filesystem holding job working
    directories.

    Implementations must never modify the filesystem. Missing paths are not errors: they
    give empty results (``False``, ``[]`` or ``None``), since the simulation writing into
    a working directory may not have got round to creating a file yet. Paths that can't be
    read (e.g. for lack of permission) give empty results as well, with a warning logged.
    """

    @abstractmethod
    def is_dir(self, path: FilePath) -> bool:
        """Whether a directory exists at `path`."""

        raise NotImplementedError

    @abstractmethod
    def glob(self, directory: FilePath, pattern: str, recursive: bool = False) -> list[str]:
        """Paths of the files in `directory` whose names match the shell-style `pattern`,
        sorted. If `recursive` is ``True`` then subdirectories are searched as well."""

        raise NotImplementedError

    @abstractmethod
    def tail(self, path: FilePath, n: int) -> list[str]:
        """The last `n` lines of a text file, without line endings."""

        raise NotImplementedError

    @abstractmethod
    def read_lines(self, path: FilePath) -> list[str]:
        """All lines of a (small) text file, without line endings."""

        raise NotImplementedError

    @abstractmethod
    def contains(self, path: FilePath, text: str) -> bool:
        """Whether the file at `path` contains `text` anywhere on a line."""

        raise NotImplementedError

    @abstractmethod
    def disk_usage(self, path: FilePath) -> Optional[str]:
        """Total disk usage of everything under `path`, in human-readable units (as
        produced by ``du -sh``), or ``None`` if this can't be determined."""

        raise NotImplementedError


_SIZE_UNITS = "KMGTPE"


def format_size(num_bytes: int) -> str:
    """Format a number of bytes in the style of ``du -h``.

    Sizes are expressed in powers of 1024 and rounded up. Sizes below 10 units are given
    to one decimal place.

    Examples
    --------
    >>> format_size(4096)
    '4.0K'
    >>> format_size(128 * 1024 ** 2)
    '128M'
    >>> format_size(int(2.1 * 1024 ** 3))
    '2.1G'
    """

    if num_bytes < 1024:
        return str(max(num_bytes, 0))

    value = float(num_bytes)
    for unit in _SIZE_UNITS:
        value /= 1024
        if value < 10:
            rounded = math.ceil(value * 10) / 10
            return f"{rounded:.1f}{unit}" if rounded < 10 else f"10{unit}"

        if math.ceil(value) < 1024 or unit == _SIZE_UNITS[-1]:
            return f"{math.ceil(value)}{unit}"


def split_lines(text: str) -> list[str]:
    r"""Split text into lines at line feeds only.

    Unlike ``str.splitlines``, other characters such as form feeds or Unicode line
    separators stay within their line, so that line counts agree with ``tail -n``. A
    carriage return before a line feed is dropped, and a final line feed doesn't start
    a further, empty line.

    Examples
    --------
    >>> split_lines("a\fb\r\nc\n")
    ['a\x0cb', 'c']
    >>> split_lines("")
    []
    """

    if not text:
        return []

    return [line.removesuffix("\r") for line in text.removesuffix("\n").split("\n")]


def tail_file(path: FilePath, n: int, block_size: int = 8192) -> list[str]:
    """Read the last `n` lines of a file without reading the whole file.

    The file is read backwards in blocks until enough line breaks have been seen. A final
    line that has not been terminated with a newline (e.g. because it is still being
    written) counts as a line. Bytes that aren't valid UTF-8 are replaced.
    """

    if n <= 0:
        return []

    with open(path, mode="rb") as f:
        f.seek(0, os.SEEK_END)
        position = f.tell()
        data = b""

        # Need more than n line breaks to be sure the first line in data is complete
        while position > 0 and data.count(b"\n") <= n:
            read_size = min(block_size, position)
            position -= read_size
            f.seek(position)
            data = f.read(read_size) + data

    return split_lines(data.decode("utf-8", errors="replace"))[-n:]


class LocalFilesystem(Filesystem):
    """Reads job working directories on the machine ``pfstatus`` is running on."""

    def is_dir(self, path: FilePath) -> bool:
        try:
            return pathlib.Path(path).is_dir()
        except OSError as e:
            logger.warning("Could not access %s: %s", path, e)
            return False

    def glob(self, directory: FilePath, pattern: str, recursive: bool = False) -> list[str]:
        directory = pathlib.Path(directory)
        if not self.is_dir(directory):
            return []

        try:
            matches = directory.rglob(pattern) if recursive else directory.glob(pattern)
            return sorted(str(path) for path in matches if path.is_file())
        except OSError as e:
            logger.warning("Could not search %s: %s", directory, e)
            return []

    def tail(self, path: FilePath, n: int) -> list[str]:
        try:
            return tail_file(path, n)
        except FileNotFoundError:
            return []
        except OSError as e:
            logger.warning("Could not read %s: %s", path, e)
            return []

    def read_lines(self, path: FilePath) -> list[str]:
        try:
            with open(path, mode="r", encoding="utf-8", errors="replace") as f:
                return split_lines(f.read())
        except FileNotFoundError:
            return []
        except OSError as e:
            logger.warning("Could not read %s: %s", path, e)
            return []

    def contains(self, path: FilePath, text: str) -> bool:
        try:
            with open(path, mode="r", encoding="utf-8", errors="replace") as f:
                return any(text in line for line in f)
        except FileNotFoundError:
            return False
        except OSError as e:
            logger.warning("Could not read %s: %s", path, e)
            return False

    def disk_usage(self, path: FilePath) -> Optional[str]:
        path = pathlib.Path(path)
        try:
            if not path.exists():
                return None
        except OSError as e:
            logger.warning("Could not access %s: %s", path, e)
            return None

        total = self._allocated_size(path)
        for root, dirs, files in os.walk(path):
            for name in dirs + files:
                total += self._allocated_size(pathlib.Path(root, name))

        return format_size(total)

    @staticmethod
    def _allocated_size(path: pathlib.Path) -> int:
        """Bytes allocated on disk for a single path (not following symlinks), or the
        apparent size where the platform doesn't report blocks."""

        try:
            stat = path.lstat()
        except FileNotFoundError:
            # Removed between listing and stat
            logger.debug("%s disappeared while computing disk usage", path)
            return 0
        except OSError as e:
            logger.debug("Could not stat %s while computing disk usage: %s", path, e)
            return 0

        blocks = getattr(stat, "st_blocks", None)
        return blocks * 512 if blocks is not None else stat.st_size


class RemoteFilesystem(Filesystem):
    """Reads job working directories on a host via standard Unix tools (``test``,
    ``find``, ``tail``, ``cat``, ``grep`` and ``du``).

    Parameters
    ----------
    host : HostInterface
        The machine whose filesystem holds the working directories.
    """

    _EXISTS_FLAG = "EXISTS"
    _FOUND_FLAG = "FOUND"

    def __init__(self, host: HostInterface):
        self._host = host

    def is_dir(self, path: FilePath) -> bool:
        result = self._host.run_command(
            f"if [ -d {shlex.quote(str(path))} ]; then echo {self._EXISTS_FLAG}; fi",
            allow_failure=True,
        )
        return result == self._EXISTS_FLAG

    def glob(self, directory: FilePath, pattern: str, recursive: bool = False) -> list[str]:
        depth = "" if recursive else " -maxdepth 1"
        result = self._host.run_command(
            f"find {shlex.quote(str(directory))}{depth} -type f "
            f"-name {shlex.quote(pattern)} 2>/dev/null",
            allow_failure=True,
        )
        return sorted(line for line in split_lines(result) if line)

    def tail(self, path: FilePath, n: int) -> list[str]:
        if n <= 0:
            return []

        result = self._host.run_command(
            f"tail -n {int(n)} {shlex.quote(str(path))} 2>/dev/null",
            allow_failure=True,
            strip=False,
        )
        return split_lines(result)

    def read_lines(self, path: FilePath) -> list[str]:
        result = self._host.run_command(
            f"cat {shlex.quote(str(path))} 2>/dev/null", allow_failure=True, strip=False
        )
        return split_lines(result)

    def contains(self, path: FilePath, text: str) -> bool:
        result = self._host.run_command(
            f"grep -qF -- {shlex.quote(text)} {shlex.quote(str(path))} 2>/dev/null "
            f"&& echo {self._FOUND_FLAG}",
            allow_failure=True,
        )
        return result == self._FOUND_FLAG

    def disk_usage(self, path: FilePath) -> Optional[str]:
        result = self._host.run_command(
            f"du -sh {shlex.quote(str(path))} 2>/dev/null | cut -f1",
            allow_failure=True,
        )
        return result or None
