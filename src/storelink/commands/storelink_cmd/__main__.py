#!/usr/bin/python3 -B
import argparse
import asyncio
import os
import sys
import textwrap
import traceback
from typing import List, NoReturn, Optional

from storelink.configuration import Configuration
from storelink.exceptions import InvariantViolationError, StorelinkRuntimeError
from storelink.install import LinkSummary, link_plan
from storelink.plan import DEFAULT_PLAN_FILENAME, load_install_plan
from storelink.project import LinkOptions, Project
from storelink.util import (
    ColorizedArgumentParser,
    _error,
    _info,
    _warn,
    program_name,
    setup_logging,
)
from storelink.version import __version__


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    description = textwrap.dedent(
        """\
    Materialize a resolved dependency graph into node_modules using a shared package
    store and per-package symlinks.

    Each third-party package is copied once into node_modules/.store and every package
    only sees the dependencies it declares.
    """
    )

    parser = ColorizedArgumentParser(
        description=description,
        formatter_class=argparse.RawDescriptionHelpFormatter,
        allow_abbrev=False,
        prog=program_name(),
    )

    parser.add_argument("--version", action="version", version=str(__version__))
    parser.add_argument(
        "--debug",
        dest="debug_mode",
        action="store_true",
        default=False,
        help="Show full stack traces on errors",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    link_parser = subparsers.add_parser(
        "link",
        allow_abbrev=False,
        help="Link the packages of an install plan into the project",
    )
    link_parser.add_argument(
        "--project-dir",
        dest="project_dir",
        default=".",
        help="The root directory of the project (default: current directory)",
    )
    link_parser.add_argument(
        "--plan",
        dest="plan_path",
        metavar="PLAN_FILE",
        default=None,
        help=f"The resolved install plan (default: <project-dir>/{DEFAULT_PLAN_FILENAME})",
    )

    return parser.parse_args(argv)


def _log_summary(summary: LinkSummary) -> None:
    _info(
        f"Installed {len(summary.records)} packages"
        f" ({summary.store_files_written} files written to the store)"
    )
    if summary.finalize_result is None:
        _warn(
            "The active linker changed while installing; the install was not finalized"
        )


def link_command(parsed_args: argparse.Namespace) -> LinkSummary:
    project_dir = os.path.abspath(parsed_args.project_dir)
    plan_path = parsed_args.plan_path
    if plan_path is None:
        plan_path = os.path.join(project_dir, DEFAULT_PLAN_FILENAME)

    configuration = Configuration.load(project_dir)
    plan = load_install_plan(plan_path, project_dir)
    project = Project(project_dir, configuration, plan.workspaces)
    summary = asyncio.run(link_plan(plan, LinkOptions(project)))
    _log_summary(summary)
    return summary


def _error_w_stack_trace(
    warning: str,
    error_msg: str,
    stacktrace: BaseException,
    debug_mode: bool,
    follow_warning: Optional[List[str]] = None,
) -> "NoReturn":
    if debug_mode:
        _warn(
            "Re-raising original exception to show the full stack trace due to debug mode being active"
        )
        raise stacktrace
    _warn(warning)
    _warn("  ----- 8< ---- BEGIN STACK TRACE ---- 8< -----")
    traceback.print_exception(stacktrace)
    _warn("  ----- 8< ---- END STACK TRACE ---- 8< -----")
    if follow_warning:
        for line in follow_warning:
            _warn(line)
    _error(error_msg)


def main(argv: Optional[List[str]] = None) -> None:
    setup_logging(reconfigure_logging=True)
    parsed_args = parse_args(argv)
    try:
        if parsed_args.command == "link":
            link_command(parsed_args)
        else:
            _error(f'Internal error: Unimplemented command "{parsed_args.command}"')
    except InvariantViolationError as e:
        _error_w_stack_trace(
            "Internal error in storelink:",
            e.message,
            e,
            parsed_args.debug_mode,
            follow_warning=["Please file a bug against storelink with the full output."],
        )
    except StorelinkRuntimeError as e:
        if parsed_args.debug_mode:
            _warn(
                "Re-raising original exception to show the full stack trace due to debug mode being active"
            )
            raise e
        _error(e.message)
    except OSError as e:
        if parsed_args.debug_mode:
            raise e
        path = f" ({e.filename})" if e.filename else ""
        _error(
            f"Linking failed{path}: {e.strerror or e}."
            " Anything already linked is kept; re-running the command is safe."
        )


if __name__ == "__main__":
    main(sys.argv[1:])
