# -*- coding: utf-8 -*-

"""

@author: Will D

"""

# This is the corrector module. This module will allow the application to:

# 1. Read the ACL of one folder or file and scan every ACE on it

# 2. Turn inherited ACEs into explicit ones before touching them

# 3. Remove write access for broad groups, or narrow it on system paths

# 4. Keep going when a single fix fails, but stop hard when we can't read

from __future__ import annotations

from .base import SecurityBackend
from .errors import AclReadError, InheritanceConversionError, RemediationApplyError
from .models import (
    AccessEntry,
    AccessList,
    Correction,
    InheritanceOutcome,
    PathKind,
    PathReport,
    PathState,
    RemediationAction,
)
from .policy import READ_AND_EXECUTE_MASK, RemediationPolicy
from .reporter import Reporter

###########################################################################

"""

Name: PermissionCorrector

Function: Secures one path at a time. It walks the path through

Unchecked -> Scanning -> Clean, or Scanning -> Remediating -> Remediated

(or PartiallyFailed when some fix didn't stick).

Arguments: backend - the SecurityBackend that reads and writes ACLs

            policy - the RemediationPolicy deciding what is insecure

            reporter - where status lines go

            audit_only - find problems but don't fix them

Returns: No value returned

"""

class PermissionCorrector:
    def __init__(
        self,
        backend: SecurityBackend,
        policy: RemediationPolicy,
        reporter: Reporter,
        audit_only: bool = False,
    ) -> None:
        self.backend = backend
        self.policy = policy
        self.reporter = reporter
        self.audit_only = audit_only

#$ End __init__

    ###########################################################################

    """

    Name: secure

    Function: Scan one path and fix every insecure identity/right pair on it.

    An empty path (a command line we couldn't parse) is a silent no-op. Failing

    to read the ACL raises AclReadError, which ends the whole run. Failing to

    fix one pair is only reported.

    Arguments: path - folder or file to secure

                service - display name of the service that owns the path

                kind - PathKind.FOLDER or PathKind.FILE

    Returns: A PathReport describing what happened

    """

    def secure(self, path: str, service: str, kind: str = PathKind.FILE) -> PathReport:
        ### Start a fresh report for this path
        report = PathReport(path=path, kind=kind, service=service)
        if not path:
            ### No path means nothing to check, call it clean
            report.state = PathState.CLEAN
            return report

        ### Now we are looking at it
        report.state = PathState.SCANNING
        self.reporter.info(f"Checking {kind} {path} ({service})")
        ### Can't read it? That ends the run
        acl = self._read(path)

        ### Inheritance gets converted at most once per path
        inheritance_attempted = False
        ### Scan the ACEs as the backend returned them, even after mutations
        for entry in list(acl.entries):
            ### Deny ACEs never grant anything
            if not entry.allow:
                continue
            ### Check each right the ACE carries on its own
            for right in entry.rights:
                ### Ask the policy what to do with this pair
                action = self.policy.action_for(path, entry.identity, right)
                if action is RemediationAction.SKIP:
                    continue

                ### Found something, so this path is no longer clean
                report.state = PathState.FLAGGED if self.audit_only else PathState.REMEDIATING
                self.reporter.warning(f"{entry.identity} has {right} on {path}", indent=1)

                ### Audit mode writes down the problem and moves on
                if self.audit_only:
                    report.corrections.append(
                        Correction(entry.identity, right, action, succeeded=False, message="not applied (audit only)")
                    )
                    continue

                ### Inherited ACEs have to become explicit before we can edit them
                if entry.is_inherited and not acl.protected and not inheritance_attempted:
                    inheritance_attempted = True
                    outcome = self._convert_inheritance(acl)
                    ### Keep working with whatever ACL the conversion handed back
                    acl = outcome.acl
                    report.inheritance_converted = outcome.converted
                    if not outcome.converted:
                        report.inheritance_error = outcome.error

                ### Fix it (or record why we couldn't)
                report.corrections.append(self._apply(acl, entry, right, action))

        ### Work out the final state and say it
        self._finish(report)
        return report

#$ End secure

    def _read(self, path: str) -> AccessList:
        try:
            ### Hand the read straight to the backend
            return self.backend.read_acl(path)
        except AclReadError as exc:
            if exc.item is None:
                ### Make sure the error says which path it was
                exc.item = path
            raise

    ###########################################################################

    """

    Name: _convert_inheritance

    Function: Stop the path from inheriting, keeping the inherited ACEs as

    explicit ones, then read the ACL again because the old copy is stale.

    Neither step failing stops the remediation.

    Arguments: acl - the ACL we have right now

    Returns: InheritanceOutcome holding the ACL to keep working with

    """

    def _convert_inheritance(self, acl: AccessList) -> InheritanceOutcome:
        error = None
        try:
            ### Step one: stop inheriting, keep the ACEs
            self.backend.protect_acl(acl)
        except InheritanceConversionError as exc:
            error = exc.message
            self.reporter.failure(f"Could not disable inheritance on {acl.path}: {exc.message}", indent=1)
        else:
            self.reporter.success(f"Converted inherited permissions on {acl.path} to explicit", indent=1)
        ### Converted only if step one went through
        converted = error is None

        try:
            ### Step two: read the ACL again, the old copy is stale
            refreshed = self.backend.read_acl(acl.path)
        except AclReadError as exc:
            self.reporter.failure(f"Could not re-read ACL of {acl.path}, keeping the previous copy: {exc.message}", indent=1)
            return InheritanceOutcome(acl=acl, converted=converted, error=error)
        return InheritanceOutcome(acl=refreshed, converted=converted, error=error)

#$ End _convert_inheritance

    ###########################################################################

    """

    Name: _apply

    Function: Carry out one remediation. Each attempt happens exactly once and

    a failure is turned into a failed Correction instead of an exception.

    Arguments: acl - the (possibly refreshed) ACL of the path

                entry - the insecure ACE

                right - the flagged right on that ACE

                action - REMOVE_GRANT or NARROW_TO_READ_EXECUTE

    Returns: A Correction

    """

    def _apply(self, acl: AccessList, entry: AccessEntry, right: str, action: RemediationAction) -> Correction:
        try:
            ### System paths keep read & execute for Users
            if action is RemediationAction.NARROW_TO_READ_EXECUTE:
                self.backend.narrow_grant(acl, entry, READ_AND_EXECUTE_MASK)
                message = f"Narrowed {entry.identity} to ReadAndExecute on {acl.path}"
            else:
                ### Everything else just loses the grant
                self.backend.remove_grant(acl, entry, right)
                message = f"Removed {right} for {entry.identity} on {acl.path}"
        except RemediationApplyError as exc:
            message = f"Failed to fix {right} for {entry.identity} on {acl.path}: {exc.message}"
            self.reporter.failure(message, indent=1)
            return Correction(entry.identity, right, action, succeeded=False, message=message)
        ### It worked
        self.reporter.success(message, indent=1)
        return Correction(entry.identity, right, action, succeeded=True, message=message)

#$ End _apply

    def _finish(self, report: PathReport) -> None:
        ### Nothing was flagged at all
        if not report.corrections:
            report.state = PathState.CLEAN
            self.reporter.success(f"No insecure permissions on {report.path}", indent=1)
        ### Flagged but left alone on purpose
        elif self.audit_only:
            report.state = PathState.FLAGGED
            self.reporter.warning(f"{report.path} needs remediation", indent=1)
        ### Something didn't stick
        elif report.failures or report.inheritance_error:
            report.state = PathState.PARTIALLY_FAILED
            self.reporter.failure(f"{report.path} was only partially secured", indent=1)
        ### Everything flagged got fixed
        else:
            report.state = PathState.REMEDIATED
            self.reporter.success(f"{report.path} secured", indent=1)

#$ End PermissionCorrector
