# -*- coding: utf-8 -*-

"""

@author: Will D

"""

# This is the CLI application for ServiceSentry. This application will allow users to:
# 1. Audit the folder and binary of every Windows service for broad write access
# 2. Fix what it finds (or just report it with --audit-only)
# 3. Keep a transcript of the run and write a text or JSON report

from __future__ import annotations  # This lets us use fancy type hints like List[str] | None

import argparse  # For parsing command line arguments
import json  # For making JSON reports
import sys  # System stuff, like exiting the program
from pathlib import Path  # For dealing with file paths
from typing import Dict, List  # Type hints

### Check if we're running as a script (not imported as a module)
if __package__ is None or __package__ == "":  # support running as a script
    sys.path.insert(0, str(Path(__file__).resolve().parent.parent))
#$ End conditional

### Our own version number
from ServiceSentry import __version__
### Picks the backend for this platform
from ServiceSentry.backends import default_backend
### Backend contract and the run settings
from ServiceSentry.core.base import SecurityBackend, SentryContext
### Secures one path at a time
from ServiceSentry.core.corrector import PermissionCorrector
### Walks every service and sums things up
from ServiceSentry.core.enumerator import ServiceEnumerator, summarize
### The errors main() turns into exit codes
from ServiceSentry.core.errors import PrivilegeError, SentryError
### What a run produces
from ServiceSentry.core.models import PathReport, RunResult
### Console output, colors and the transcript
from ServiceSentry.core.reporter import Palette, Reporter, apply_color, set_color_enabled
### Loads the JSON config
from ServiceSentry.core.utils import read_config

###########################################################################################################

### The description string that tells people what this tool does
description = f"ServiceSentry {__version__}: finds and fixes broad write access on Windows service binaries."

###########################################################################################################

"""

Name: build_parser

Function: Builds the argument parser that handles all the command line options.

Arguments: None

Returns: An ArgumentParser object that knows about all our options

"""

def build_parser() -> argparse.ArgumentParser:
    ### Create the parser with our program name and description
    parser = argparse.ArgumentParser(
        prog="ServiceSentry",
        description=description,
    )

    parser.add_argument(
        ### Show the version and quit
        "--version",
        action="version",
        version=f"ServiceSentry {__version__}"
    )

    ### Look but don't touch
    parser.add_argument(
        "--audit-only",
        action="store_true",
        help="Report insecure permissions without changing anything"
    )

    parser.add_argument(
        ### JSON config with system paths, extra identities, domain and audit mode
        "--config",
        type=Path,
        help="Path to JSON configuration file"
    )

    ### Paths where BUILTIN\Users keeps read & execute instead of being removed
    parser.add_argument(
        "--system-path",
        action="append",
        default=[],
        help="Extra system path where Users is narrowed to read & execute (repeatable)",
    )

    parser.add_argument(
        ### Plain-text copy of everything we print
        "--transcript",
        type=Path,
        help="Append a plain-text transcript of the run to this file"
    )

    parser.add_argument(
        ### Where to save the report, if anywhere
        "--output",
        type=Path,
        help="Write report to file (text or json format)"
    )

    parser.add_argument(
        ### Text for people, JSON for scripts
        "--format",
        choices=["text", "json"],
        default="text",
        help="Output format for reports (defaults to text)",
    )

    parser.add_argument(
        ### For terminals (and log collectors) that hate ANSI codes
        "--no-color",
        action="store_true",
        help="Disable ANSI colors"
    )

    parser.add_argument(
        ### Nothing on the console at all
        "--quiet",
        action="store_true",
        help="Suppress console output (use with --output or --transcript)"
    )

    ### Hand back the fully loaded parser
    return parser

#$ End build_parser

###########################################################################################################

"""

Name: main

Function: The main driver function. Loads the config, checks we're elevated,

runs the engine and prints the summary.

Arguments: argv - Optional list of command line arguments (None means use sys.argv)

            backend - Optional SecurityBackend (None means pick the platform one)

Returns: Integer exit code (0 success, 1 run aborted, 2 not elevated)

"""

def main(argv: List[str] | None = None, backend: SecurityBackend | None = None) -> int:
    ### Parse whatever the user typed
    parser = build_parser()
    args = parser.parse_args(argv)

    ### Turn colors off if asked
    if args.no_color:
        set_color_enabled(False)
#$ End conditional

    config: Dict[str, object] = {}
    ### Load the config file, a bad one is a usage error
    if args.config:
        try:
            config = read_config(args.config)
        except (FileNotFoundError, ValueError) as exc:
            parser.error(str(exc))
#$ End conditional

    ### Merge config and command line into the run settings
    context = SentryContext.from_config(config, extra_system_paths=args.system_path, audit_only=args.audit_only)

    with Reporter(quiet=args.quiet, transcript=args.transcript) as reporter:
        ### Pick a backend and make sure we're allowed to touch ACLs at all
        try:
            if backend is None:
                backend = default_backend()
            if not backend.is_elevated():
                raise PrivilegeError("Administrative privileges are required", item="current process")
        except PrivilegeError as exc:
            reporter.failure(str(exc))
            ### Not elevated, nothing was touched
            return 2
        except SentryError as exc:
            reporter.failure(str(exc))
            return 1
#$ End try

        ### Show off a little
        maybe_display_banner(args.quiet)

        ### Fatal errors land here with the item they happened on
        try:
            result = run_sentry(backend, context, reporter)
        except SentryError as exc:
            reporter.failure(str(exc))
            return 1
#$ End try

        ### Say which services got secured
        emit_summary(result, reporter)

        ### Write the report if the user asked for one
        if args.output:
            write_report(build_report(result, context, backend, reporter), args.output, args.format)
#$ End conditional

    return 0

#$ End main

###########################################################################################################

"""

Name: run_sentry

Function: Wire the policy, corrector and enumerator together and do one run.

Arguments: backend - the SecurityBackend to use
           context - settings for this run
           reporter - where status lines go

Returns: The RunResult of the run

"""

def run_sentry(backend: SecurityBackend, context: SentryContext, reporter: Reporter) -> RunResult:
    ### The policy needs the domain, which may come from the backend
    policy = context.build_policy(backend)
    if context.audit_only:
        reporter.info("Audit-only mode: nothing will be changed")
    ### Wire the corrector into the enumerator and go
    corrector = PermissionCorrector(backend, policy, reporter, audit_only=context.audit_only)
    return ServiceEnumerator(backend, corrector, reporter).run()

#$ End run_sentry

def path_report_to_dict(report: PathReport) -> Dict[str, object]:
    return {
        "path": report.path,
        "kind": report.kind,
        "service": report.service,
        "state": report.state.value,
        "inheritance_converted": report.inheritance_converted,
        "inheritance_error": report.inheritance_error,
        "corrections": [
            {
                "identity": c.identity,
                "right": c.right,
                "action": c.action.value,
                "succeeded": c.succeeded,
                "message": c.message,
            }
            for c in report.corrections
        ],
    }

###########################################################################################################

"""

Name: build_report

Function: Collect the run into a plain dictionary ready for JSON or text.

Arguments: result - the RunResult
           context - settings for this run
           backend - the backend that was used
           reporter - the Reporter whose lines go into the log section

Returns: Dictionary containing the complete report

"""

def build_report(
    result: RunResult, context: SentryContext, backend: SecurityBackend, reporter: Reporter
) -> Dict[str, object]:
    return {
        "tool": "ServiceSentry",
        "version": __version__,
        "backend": backend.name,
        "mode": "audit" if result.audit_only else "remediate",
        "system_paths": list(context.system_paths),
        "secured_services": list(result.secured_services),
        "summary": summarize(result),
        "paths": [path_report_to_dict(report) for report in result.reports],
        "path_owners": result.path_owners,
        ### Everything printed during the run, in order
        "log": [{"tag": tag, "text": text} for tag, text in reporter.lines],
    }

#$ End build_report

def write_report(report: Dict[str, object], path: Path, fmt: str) -> None:
    ### JSON is just a dump of the dictionary
    if fmt == "json":
        payload = json.dumps(report, indent=2)
    else:
        payload = render_text_report(report)
    ### Make the report folder if it isn't there yet
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(payload + "\n", encoding="utf-8")

###########################################################################################################

"""

Name: render_text_report

Function: Converts the report dictionary into a human-readable text format.

Arguments: report - The report dictionary to render

Returns: String containing the formatted text report

"""

def render_text_report(report: Dict[str, object]) -> str:
    ### Header line with version and mode
    lines = [f"ServiceSentry v{report['version']} ({report['mode']})"]

    ### One block per path we looked at
    for entry in report.get("paths", []):
        lines.append("")
        lines.append(f"{entry['path']} [{entry['kind']}, {entry['service']}] -> {entry['state']}")
        if entry.get("inheritance_converted"):
            lines.append("    inheritance converted to explicit")
        if entry.get("inheritance_error"):
            lines.append(f"    inheritance not converted: {entry['inheritance_error']}")
        for correction in entry.get("corrections", []):
            ### ok for applied fixes, -- for failed or audit-only ones
            mark = "ok" if correction["succeeded"] else "--"
            lines.append(f"    [{mark}] {correction['identity']} {correction['right']} ({correction['action']})")
#$ End iteration

    ### Paths shared by more than one service
    shared = {path: owners for path, owners in report.get("path_owners", {}).items() if len(owners) > 1}
    if shared:
        lines.append("")
        lines.append("Shared paths:")
        for path, owners in shared.items():
            lines.append(f"    {path}: {', '.join(owners)}")
#$ End conditional

    lines.append("")
    ### Finish with the same summary the console got
    lines.extend(report.get("summary", []))
    return "\n".join(lines)

#$ End render_text_report

def emit_summary(result: RunResult, reporter: Reporter) -> None:
    ### Headline first, then one line per secured service
    headline, *names = summarize(result)
    ### Good news gets printed in green
    if result.all_secure:
        reporter.success(headline)
        return
    reporter.warning(headline)
    for name in names:
        reporter.heading(name.strip(), indent=1)

###########################################################################################################

"""

Name: maybe_display_banner

Function: Displays the ASCII art banner (unless user is in quiet mode).

Arguments: quiet - Whether to suppress the banner

Returns: No value returned

"""

def maybe_display_banner(quiet: bool) -> None:
    ### Quiet mode means no banner
    if quiet:
        return
#$ End conditional

    art = r"""
  ____                  _           ____             _
 / ___|  ___ _ ____   _(_) ___ ___ / ___|  ___ _ __ | |_ _ __ _   _
 \___ \ / _ \ '__\ \ / / |/ __/ _ \\___ \ / _ \ '_ \| __| '__| | | |
  ___) |  __/ |   \ V /| | (_|  __/ ___) |  __/ | | | |_| |  | |_| |
 |____/ \___|_|    \_/ |_|\___\___||____/ \___|_| |_|\__|_|   \__, |
                                                              |___/
"""

    ### Print the art one colored line at a time
    for line in art.strip("\n").splitlines():
        print(apply_color(line, Palette.MAGENTA, Palette.BOLD))
#$ End iteration

    ### And the one-liner underneath
    print(description)

#$ End maybe_display_banner

###########################################################################################################

if __name__ == "__main__":
    sys.exit(main())
