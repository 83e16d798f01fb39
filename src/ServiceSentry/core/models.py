# -*- coding: utf-8 -*-

"""

@author: Will D

"""

# This is the models module. This module will allow the application to:

# 1. Describe a service and the paths we derive from its command line

# 2. Describe one ACL and its ACEs the way the backend hands them to us

# 3. Track which paths were visited and what happened to each of them

# 4. Collect everything a run produces into a single RunResult

from __future__ import annotations

import enum
import ntpath
from dataclasses import dataclass, field
from typing import Dict, List, Optional


class PathKind:
    FOLDER = "folder"
    FILE = "file"


###########################################################################

"""

Name: ServiceRecord

Function: Read-only snapshot of one registered service. The executable and

folder paths are derived once, when the record is built.

Arguments: None (it's a dataclass, so it's just fields)

Returns: No value returned (it's a class definition)

"""

@dataclass(frozen=True)
class ServiceRecord:
    ### Short service name (like "wuauserv")
    name: str
    ### Display name, used for sorting and for the summary
    display_name: str
    ### Command line exactly as the service manager has it
    command_line: str
    ### Executable path pulled out of the command line ("" when there is none)
    executable_path: str = ""
    ### Directory holding the executable ("" when there is none)
    folder_path: str = ""

#$ End ServiceRecord

###########################################################################

"""

Name: PathVisitSet

Function: Two disjoint sets of already processed paths, one for folders and

one for files. A path goes in once, before it is processed, and never leaves.

Arguments: None (it's a dataclass, so it's just fields)

Returns: No value returned (it's a class definition)

"""

@dataclass
class PathVisitSet:
    files: set = field(default_factory=set)
    folders: set = field(default_factory=set)

    ###########################################################################

    """

    Name: claim

    Function: Add a path to the right set. Windows paths are case-insensitive,

    so the key is normalized with ntpath.normcase first.

    Arguments: path - the folder or file path

                kind - "folder" or "file"

    Returns: Boolean - True if the path was new, False if it was seen already

    """

    def claim(self, path: str, kind: str) -> bool:
        bucket = self.folders if kind == PathKind.FOLDER else self.files
        key = ntpath.normcase(path)
        if key in bucket:
            return False
        bucket.add(key)
        return True

#$ End claim

#$ End PathVisitSet

###########################################################################

"""

Name: AccessEntry

Function: One ACE as the backend read it. The mask is kept raw and split

into named rights on demand, because a single ACE can carry several rights

at once (Modify and Synchronize, for example).

Arguments: None (it's a dataclass, so it's just fields)

Returns: No value returned (it's a class definition)

"""

@dataclass(frozen=True)
class AccessEntry:
    ### Principal name, like "BUILTIN\Users" or "Everyone"
    identity: str
    ### Raw FileSystemRights access mask
    mask: int
    ### True if the ACE was propagated from a parent container
    is_inherited: bool = False
    ### True for allow ACEs, False for deny ACEs
    allow: bool = True
    ### String SID of the principal, when the backend knows it
    sid: Optional[str] = None
    ### Raw ACE flags (inheritance and propagation bits)
    flags: int = 0

    @property
    def rights(self) -> List[str]:
        from .policy import split_rights

        return split_rights(self.mask)

#$ End AccessEntry

###########################################################################

"""

Name: AccessList

Function: The ACL of one path. It belongs to the operating system; we only

borrow it while a single path is being remediated.

Arguments: None (it's a dataclass, so it's just fields)

Returns: No value returned (it's a class definition)

"""

@dataclass
class AccessList:
    ### The path this ACL protects
    path: str
    ### ACEs in the order the backend returned them
    entries: List[AccessEntry] = field(default_factory=list)
    ### True once inheritance from the parent is disabled
    protected: bool = False
    ### Whatever the backend needs to write the ACL back (a PyACL for pywin32)
    handle: object = None

#$ End AccessList


class RemediationAction(enum.Enum):
    SKIP = "skip"
    NARROW_TO_READ_EXECUTE = "narrow_to_read_execute"
    REMOVE_GRANT = "remove_grant"


class PathState(enum.Enum):
    UNCHECKED = "unchecked"
    SCANNING = "scanning"
    REMEDIATING = "remediating"
    CLEAN = "clean"
    REMEDIATED = "remediated"
    PARTIALLY_FAILED = "partially_failed"
    FLAGGED = "flagged"


###########################################################################

"""

Name: InheritanceOutcome

Function: What converting inherited ACEs into explicit ones gave back. The

acl field is the re-read ACL when that worked, or the original one when the

re-read failed. Callers must continue with this acl and never the old one.

Arguments: None (it's a dataclass, so it's just fields)

Returns: No value returned (it's a class definition)

"""

@dataclass
class InheritanceOutcome:
    acl: AccessList
    converted: bool
    error: Optional[str] = None

#$ End InheritanceOutcome


@dataclass
class Correction:
    identity: str
    right: str
    action: RemediationAction
    succeeded: bool
    message: str = ""


###########################################################################

"""

Name: PathReport

Function: The result of securing one path: where it ended up in the state

machine and every correction that was attempted along the way.

Arguments: None (it's a dataclass, so it's just fields)

Returns: No value returned (it's a class definition)

"""

@dataclass
class PathReport:
    path: str
    kind: str
    service: str
    state: PathState = PathState.UNCHECKED
    inheritance_converted: bool = False
    inheritance_error: Optional[str] = None
    corrections: List[Correction] = field(default_factory=list)

    ### True when at least one insecure ACE was found on the path
    @property
    def flagged(self) -> bool:
        return self.state in (PathState.REMEDIATED, PathState.PARTIALLY_FAILED, PathState.FLAGGED)

    @property
    def failures(self) -> List[Correction]:
        return [c for c in self.corrections if not c.succeeded]

#$ End PathReport

###########################################################################

"""

Name: RunResult

Function: Everything one run produces. It is built by the enumerator, handed

back to the caller and thrown away afterwards. Nothing here is global.

Arguments: None (it's a dataclass, so it's just fields)

Returns: No value returned (it's a class definition)

"""

@dataclass
class RunResult:
    ### Display names of secured services, in first-flagged order, no duplicates
    secured_services: List[str] = field(default_factory=list)
    ### Paths already handled during this run
    visited: PathVisitSet = field(default_factory=PathVisitSet)
    ### One report per path that was actually examined
    reports: List[PathReport] = field(default_factory=list)
    ### Every service that references a path, including the ones skipped by dedup
    path_owners: Dict[str, List[str]] = field(default_factory=dict)
    ### True when nothing was written back
    audit_only: bool = False

    def record_secured(self, display_name: str) -> None:
        if display_name not in self.secured_services:
            self.secured_services.append(display_name)

    def record_owner(self, path: str, display_name: str) -> None:
        ### Reuse the first spelling we saw for this path
        key = next((known for known in self.path_owners if ntpath.normcase(known) == ntpath.normcase(path)), path)
        owners = self.path_owners.setdefault(key, [])
        if display_name not in owners:
            owners.append(display_name)

    @property
    def all_secure(self) -> bool:
        return not self.secured_services

#$ End RunResult
