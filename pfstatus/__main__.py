import argparse
import logging
import sys
from importlib.metadata import PackageNotFoundError, version

from paramiko.ssh_exception import SSHException

from pfstatus.app.app import App, watch
from pfstatus.app.cli import (
    DEFAULT_WATCH_INTERVAL,
    Cli,
    add_query_arguments,
    parse_positive_float,
)
from pfstatus.app.settings import (
    Settings,
    SettingsError,
    read_settings_json,
    write_settings_json,
)
from pfstatus.monitoring.hosts import HostCommandError

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def get_version() -> str:
    """Retrieve the version of pfstatus currently installed."""

    try:
        return version("pfstatus")
    except PackageNotFoundError:
        return "Package not found."


def make_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pfstatus",
        description="Show the status of ParFlow jobs running under SLURM.",
    )
    add_query_arguments(parser)
    parser.add_argument(
        "-w",
        "--watch",
        type=parse_positive_float,
        nargs="?",
        const=DEFAULT_WATCH_INTERVAL,
        default=None,
        metavar="SECONDS",
        help=(
            "repeat the report every SECONDS seconds until interrupted with Ctrl-C "
            f"(SECONDS defaults to {DEFAULT_WATCH_INTERVAL:g})"
        ),
    )
    parser.add_argument(
        "--shell",
        action="store_true",
        help="start an interactive shell for repeatedly querying jobs",
    )
    parser.add_argument(
        "--scratch",
        default=None,
        metavar="DIR",
        help="directory containing the jobs' working directories (defaults to $SCRATCH)",
    )
    parser.add_argument(
        "--user",
        default=None,
        help="user whose jobs are listed (defaults to $USER)",
    )
    parser.add_argument(
        "--filter",
        default=None,
        metavar="TEXT",
        help="text that listed jobs' names must contain (defaults to 'ParFlow')",
    )
    parser.add_argument(
        "--host",
        default=None,
        help="inspect jobs on a remote host (e.g. a cluster login node) over SSH",
    )
    parser.add_argument(
        "--ssh-user",
        default=None,
        help="user to log in to the remote host as (defaults to the job user)",
    )
    parser.add_argument(
        "--key-file",
        default=None,
        metavar="PATH",
        help="private key for logging in to the remote host",
    )
    parser.add_argument(
        "--ssh-config",
        default=None,
        metavar="PATH",
        help="SSH config file for logging in to the remote host",
    )
    parser.add_argument(
        "--ssh-agent",
        action="store_true",
        default=None,
        help="use a running SSH agent for logging in to the remote host",
    )
    parser.add_argument(
        "-c",
        "--config",
        default=None,
        metavar="FILE",
        help="JSON file of settings; command line options take precedence over it",
    )
    parser.add_argument(
        "--save-config",
        default=None,
        metavar="FILE",
        help="write the settings in effect to a JSON file and exit",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="log debugging information to standard error",
    )
    parser.add_argument(
        "-V",
        "--version",
        action="version",
        version=f"pfstatus {get_version()}",
        help="show the current installed version of pfstatus and exit",
    )
    return parser


def make_settings(args: argparse.Namespace) -> Settings:
    """Make settings from the environment, a config file and the command line, in
    increasing order of precedence.

    Raises
    ------
    SettingsError
        If the config file can't be read or contains unknown settings.
    """

    settings = Settings.from_environment()
    if args.config is not None:
        settings = settings.merged(**read_settings_json(args.config))

    return settings.merged(
        scratch_root=args.scratch,
        user=args.user,
        job_name_filter=args.filter,
        host=args.host,
        ssh_user=args.ssh_user,
        key_filename=args.key_file,
        ssh_config_path=args.ssh_config,
        use_ssh_agent=args.ssh_agent,
    )


def main(argv=None):
    """The entry point into the pfstatus command line application."""

    try:
        parser = make_parser()
        args = parser.parse_args(argv)

        logging.basicConfig(
            level=logging.DEBUG if args.verbose else logging.WARNING,
            format=LOG_FORMAT,
        )

        try:
            settings = make_settings(args)
        except SettingsError as e:
            parser.error(str(e))

        if args.save_config is not None:
            write_settings_json(settings, args.save_config)
            sys.exit(0)

        try:
            app = App(settings)
        except (SettingsError, ValueError) as e:
            parser.error(str(e))
        except (HostCommandError, SSHException) as e:
            sys.exit(f"Error: {e}")

        try:
            if args.shell:
                sys.exit(Cli(app).cmdloop())
            elif args.watch is not None:
                watch(lambda: app.report(args.job_ids, args.num_lines), args.watch)
            else:
                print(app.report(args.job_ids, args.num_lines))
        finally:
            app.shutdown()

    except KeyboardInterrupt:
        sys.exit(print())  # Use of print ensures next shell prompt starts on new line


if __name__ == "__main__":
    main()
