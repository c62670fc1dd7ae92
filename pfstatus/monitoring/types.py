"""
Provides type definitions shared across the `pfstatus` package.


Type Definitions
------------------------------------------------------------------------------------
[`FilePath`][pfstatus.monitoring.types.FilePath]
Represents a file path, defined as a union of `str` and `PathLike` to support both
string-based and OS-native path objects.

"""

from os import PathLike
from typing import Union

FilePath = Union[str, PathLike]
"""A type to represent filepaths."""
