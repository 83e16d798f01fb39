# -*- coding: utf-8 -*-

"""

@author: Will D

"""

# This is the enumerator module. This module will allow the application to:

# 1. Fetch every service and sort it by display name

# 2. Work out each service's executable and folder

# 3. Make sure every folder and file is secured exactly once per run

# 4. Collect the results into a RunResult and produce the summary

from __future__ import annotations

from typing import Iterable, List, Tuple

from .base import SecurityBackend
from .corrector import PermissionCorrector
from .errors import EnumerationError, RunAbortedError, SentryError
from .models import PathKind, RunResult, ServiceRecord
from .reporter import Reporter
from .utils import extract_executable_path, parent_folder

###########################################################################

"""

Name: build_records

Function: Turn the raw (name, display name, command line) triples into

ServiceRecords, sorted by display name. The sort is stable and ignores case.

Arguments: services - iterable of triples from the backend

Returns: List of ServiceRecord objects in processing order

"""

def build_records(services: Iterable[Tuple[str, str, str]]) -> List[ServiceRecord]:
    ### One record per service, in whatever order the backend gave us
    records = []
    for name, display_name, command_line in services:
        ### Work out the binary, then the folder it sits in
        executable = extract_executable_path(command_line)
        records.append(
            ServiceRecord(
                name=name,
                display_name=display_name or name,
                command_line=command_line or "",
                executable_path=executable,
                folder_path=parent_folder(executable),
            )
        )
    ### sorted() is stable, so equal names keep their order
    return sorted(records, key=lambda record: record.display_name.casefold())

#$ End build_records

###########################################################################

"""

Name: ServiceEnumerator

Function: Drives the PermissionCorrector over every service, folder first

and then file, skipping paths already handled earlier in the same run.

Arguments: backend - the SecurityBackend to list services from

            corrector - the PermissionCorrector that secures each path

            reporter - where status lines go

Returns: No value returned

"""

class ServiceEnumerator:
    def __init__(self, backend: SecurityBackend, corrector: PermissionCorrector, reporter: Reporter) -> None:
        self.backend = backend
        self.corrector = corrector
        self.reporter = reporter

    ###########################################################################

    """

    Name: run

    Function: Do one full pass over all services. An empty or failed service

    listing raises EnumerationError. Any other error inside the loop stops the

    run too, tagged with the service it happened on.

    Arguments: None

    Returns: RunResult for this run

    """

    def run(self) -> RunResult:
        ### No services, no run
        records = self.fetch_records()
        ### Everything this run learns goes in here
        result = RunResult(audit_only=self.corrector.audit_only)
        self.reporter.info(f"Found {len(records)} services")

        ### One service at a time, in display name order
        for record in records:
            try:
                self._process(record, result)
            except SentryError:
                ### Our own errors already carry the right item
                raise
            except Exception as exc:
                ### Anything else gets tagged with the service it hit
                raise RunAbortedError(str(exc), item=record.display_name) from exc

        return result

#$ End run

    def fetch_records(self) -> List[ServiceRecord]:
        try:
            ### Ask the backend for every service
            services = self.backend.list_services()
        except EnumerationError:
            raise
        except Exception as exc:
            ### Anything the backend didn't wrap itself becomes an EnumerationError
            raise EnumerationError(f"Unable to list services: {exc}", item="services") from exc
        ### An empty list means something is badly wrong
        if not services:
            raise EnumerationError("Service list came back empty", item="services")
        return build_records(services)

    def _process(self, record: ServiceRecord, result: RunResult) -> None:
        ### Folder always before file
        for path, kind in ((record.folder_path, PathKind.FOLDER), (record.executable_path, PathKind.FILE)):
            if not path:
                ### Unparseable command line, nothing to do here
                continue
            ### Remember every service that points at this path
            result.record_owner(path, record.display_name)
            ### Already secured earlier in this run
            if not result.visited.claim(path, kind):
                continue
            ### First time we see this path, secure it
            report = self.corrector.secure(path, record.display_name, kind)
            result.reports.append(report)
            ### Only services that had something wrong go in the log
            if report.flagged:
                result.record_secured(record.display_name)

#$ End ServiceEnumerator

###########################################################################

"""

Name: summarize

Function: Turn a RunResult into the closing lines of the run.

Arguments: result - the RunResult to summarize

Returns: List of strings, the first one being the headline

"""

def summarize(result: RunResult) -> List[str]:
    ### Nothing flagged anywhere
    if result.all_secure:
        return ["All services are already secure."]
    ### Audit runs didn't change anything, so say so
    verb = "would be secured" if result.audit_only else "were secured"
    lines = [f"The following services {verb}:"]
    lines.extend(f"  {name}" for name in result.secured_services)
    return lines

#$ End summarize
