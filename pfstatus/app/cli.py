import argparse
from typing import Optional

import cmd2

from pfstatus.app.app import App, watch
from pfstatus.monitoring.inspector import DEFAULT_NUM_LINES
from pfstatus.monitoring.jobs import JobId, parse_job_ids

DEFAULT_WATCH_INTERVAL = 10.0


def parse_positive_int(value: str) -> int:
    """Parse a command line value as a positive integer.

    Raises
    ------
    argparse.ArgumentTypeError
        If the value is not a positive integer.
    """

    try:
        parsed = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"'{value}' is not an integer") from None

    if parsed <= 0:
        raise argparse.ArgumentTypeError(f"'{value}' is not a positive integer")

    return parsed


def parse_positive_float(value: str) -> float:
    """Parse a command line value as a positive number of seconds.

    Raises
    ------
    argparse.ArgumentTypeError
        If the value is not a positive number.
    """

    try:
        parsed = float(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"'{value}' is not a number") from None

    if not parsed > 0:
        raise argparse.ArgumentTypeError(f"'{value}' is not a positive number")

    return parsed


def parse_job_ids_arg(value: str) -> tuple[JobId, ...]:
    """Parse a comma-separated list of job IDs given on the command line.

    Raises
    ------
    argparse.ArgumentTypeError
        If one of the IDs is not a valid SLURM job ID.
    """

    try:
        return parse_job_ids(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(str(e)) from None


def add_query_arguments(parser: argparse.ArgumentParser) -> None:
    """Add the arguments selecting which jobs to report on, and how much of their logs
    to show."""

    parser.add_argument(
        "-j",
        "--job_ids",
        type=parse_job_ids_arg,
        default=None,
        metavar="IDS",
        help=(
            "comma-separated list of job IDs to report on (defaults to all of the "
            "user's jobs with a matching name)"
        ),
    )
    parser.add_argument(
        "-n",
        "--num_lines",
        type=parse_positive_int,
        default=DEFAULT_NUM_LINES,
        metavar="LINES",
        help="number of lines to show from the end of each log (defaults to %(default)s)",
    )


class Cli(cmd2.Cmd):
    """An interactive shell for reporting on ParFlow jobs.

    This class implements a command line interpreter using the ``cmd2`` third-party
    package. All commands share a single application instance, and hence a single
    connection to the cluster, for the whole session.

    Parameters
    ----------
    app : App
        The application used to inspect jobs.
    """

    status_parser = cmd2.Cmd2ArgumentParser()
    add_query_arguments(status_parser)

    watch_parser = cmd2.Cmd2ArgumentParser()
    watch_parser.add_argument(
        "-i",
        "--interval",
        type=parse_positive_float,
        default=DEFAULT_WATCH_INTERVAL,
        metavar="SECONDS",
        help="seconds between reports (defaults to %(default)s)",
    )
    add_query_arguments(watch_parser)

    def __init__(self, app: App):
        super().__init__(allow_cli_args=False)
        self._app = app
        self.prompt = "(pfstatus)> "

    def do_quit(self, args) -> Optional[bool]:
        """Exit the application."""

        self._app.shutdown()
        return super().do_quit(args)

    def _render_stdout(self, text: str) -> None:
        """Write text to standard output, followed by a blank line."""

        self.poutput(text + "\n")

    @cmd2.with_argparser(status_parser)
    def do_status(self, args) -> None:
        """Show the status of ParFlow jobs."""

        self._render_stdout(self._app.report(args.job_ids, args.num_lines))

    @cmd2.with_argparser(watch_parser)
    def do_watch(self, args) -> None:
        """Show the status of ParFlow jobs repeatedly until interrupted with Ctrl-C."""

        try:
            watch(
                lambda: self._app.report(args.job_ids, args.num_lines),
                args.interval,
                output=self.poutput,
            )
        except KeyboardInterrupt:
            self.poutput("")
