from collections import OrderedDict
from collections.abc import Sequence
from typing import Any, Callable, Optional


def make_table(
    data: OrderedDict[str, Sequence[Any]],
    formatters: Optional[dict[str, Callable[[Any], str]]] = None,
    separator: str = "  ",
) -> str:
    """Make a table of data as a string.

    Each column in the table is left-justified and columns are separated with
    `separator`. The contents of each data cell in a column is formatted according to the
    supplied formatting function, if any, or else just as a string using Python's built-in
    ``str`` function. The width of the column is equal to the length of the longest
    (string formatted) cell value in the column (including the column header).

    Parameters
    ----------
    data : OrderedDict[str, Sequence[Any]]
        The data to put into the table. The keys of the ordered dict should be the
        table column headers (formatted as desired for the table) and the values should
        be the values in the columns. The order of the columns output is given by the
        order of the corresponding keys in the ordered dict.
    formatters : dict[str, Callable[[Any], str]], optional
        (Default: None) A collection of formatting functions to apply to columns. Keys of
        the dict should be column headings. The value for a column heading should be a
        single argument function that can be applied to a value in the column and return a
        string representation of that value. Columns without a formatter are converted
        to strings using Python's ``str`` built-in function.
    separator : str, optional
        (Default: two spaces) The text placed between adjacent cells in a row.

    Returns
    -------
    str
        A table of the data, with a header row followed by one row per data entry.
    """

    # Format contents of table cells according to given formatters, or else use string
    # representation
    formatters = {k: str for k in data} | (formatters or {})
    formatted_data = OrderedDict(
        [(k, tuple(map(formatters[k], v))) for k, v in data.items()]
    )

    # Make all cells the same width column-wise
    columns = [[k] + list(v) for k, v in formatted_data.items()]
    max_cell_widths = [max(map(len, col)) for col in columns]
    tidied_columns = []
    for width, column in zip(max_cell_widths, columns):
        fmt = "{" + f":<{width}" + "}"
        tidied_column = [fmt.format(cell) for cell in column]
        tidied_columns.append(tidied_column)

    # Separate cells in rows
    rows = [separator.join(row_cells) for row_cells in zip(*tidied_columns)]

    # Join rows to return a single string
    return "\n".join(rows)
