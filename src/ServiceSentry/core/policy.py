# -*- coding: utf-8 -*-

"""

@author: Will D

"""

# This is the policy module. This module will allow the application to:

# 1. Name the FileSystemRights bits so an access mask can be split into rights

# 2. Hold the table of flagged identities and flagged rights

# 3. Decide, for a path/identity/right, whether to skip, remove or narrow

from __future__ import annotations

import ntpath
import os
from typing import Iterable, List, Sequence

from .models import RemediationAction

### FileSystemRights, ordered from the biggest composite right down to single bits.
### Splitting walks this list and takes every right fully contained in what's left.
FILE_SYSTEM_RIGHTS = (
    ("FullControl", 0x1F01FF),
    ("Synchronize", 0x100000),
    ("TakeOwnership", 0x80000),
    ("ChangePermissions", 0x40000),
    ("Modify", 0x301BF),
    ("ReadAndExecute", 0x200A9),
    ("Read", 0x20089),
    ("ReadPermissions", 0x20000),
    ("Delete", 0x10000),
    ("Write", 0x116),
    ("WriteAttributes", 0x100),
    ("ReadAttributes", 0x80),
    ("DeleteSubdirectoriesAndFiles", 0x40),
    ("ExecuteFile", 0x20),
    ("WriteExtendedAttributes", 0x10),
    ("ReadExtendedAttributes", 0x8),
    ("AppendData", 0x4),
    ("WriteData", 0x2),
    ("ReadData", 0x1),
)

RIGHT_MASKS = dict(FILE_SYSTEM_RIGHTS)

### What a narrowed grant ends up with (ReadAndExecute plus Synchronize, same as icacls "(RX)")
READ_AND_EXECUTE_MASK = RIGHT_MASKS["ReadAndExecute"] | RIGHT_MASKS["Synchronize"]

### Rights that let an identity replace or alter the binary
FLAGGED_RIGHTS = frozenset({"FullControl", "Modify", "Write"})

EVERYONE = "Everyone"
AUTHENTICATED_USERS = "NT AUTHORITY\\Authenticated Users"
BUILTIN_USERS = "BUILTIN\\Users"
DOMAIN_USERS = "Domain Users"

### Broad groups nobody should let write into a service directory
FLAGGED_IDENTITIES = frozenset({EVERYONE, AUTHENTICATED_USERS, BUILTIN_USERS})

###########################################################################

"""

Name: split_rights

Function: Break an access mask into its named rights, the same way .NET

formats a FileSystemRights value. Bits that don't add up to a known right

are reported as a hex leftover.

Arguments: mask - the raw access mask

Returns: List of right names, smallest first (like "Modify", "Synchronize")

"""

def split_rights(mask: int) -> List[str]:
    ### Bits we haven't named yet
    remaining = mask
    found: List[str] = []
    ### Biggest rights first, so FullControl beats Modify beats Write
    for name, value in FILE_SYSTEM_RIGHTS:
        if remaining & value == value:
            found.append(name)
            ### Those bits are accounted for now
            remaining &= ~value
        if not remaining:
            break
    ### Smallest first, the way .NET prints them
    found.reverse()
    if remaining:
        ### Whatever is left has no name, show it raw
        found.append(hex(remaining))
    return found

#$ End split_rights

###########################################################################

"""

Name: default_system_paths

Function: The paths that get narrowed instead of stripped: the shared service

host and the directory it lives in. Removing Users from these breaks Windows.

Arguments: None

Returns: List of two path strings

"""

def default_system_paths() -> List[str]:
    ### SystemRoot is almost always C:\Windows, but not always
    system_root = os.environ.get("SystemRoot", "C:\\Windows")
    system32 = ntpath.join(system_root, "System32")
    return [ntpath.join(system32, "svchost.exe"), system32]

#$ End default_system_paths

###########################################################################

"""

Name: RemediationPolicy

Function: The flagged-identity table, the flagged-rights table and the list

of system paths, all in one place so they can be audited and tested without

touching a real ACL.

Arguments: system_paths - paths that get the narrow-to-read-execute carve-out

            domain - current domain, used to build "<DOMAIN>\\Domain Users"

            extra_identities - any more principal names to flag

Returns: No value returned

"""

class RemediationPolicy:
    def __init__(
        self,
        system_paths: Sequence[str] | None = None,
        domain: str | None = None,
        extra_identities: Iterable[str] = (),
    ) -> None:
        self.system_paths = list(system_paths) if system_paths is not None else default_system_paths()
        self.domain = domain
        ### Start from the broad groups and add the domain and extras
        identities = set(FLAGGED_IDENTITIES)
        ### Domain Users only makes sense when we know the domain
        if domain:
            identities.add(f"{domain}\\{DOMAIN_USERS}")
        identities.update(extra_identities)
        self.identities = frozenset(identities)
        ### Lookups are case-insensitive but otherwise exact
        self._identity_keys = {identity.casefold() for identity in self.identities}
        ### Same for system paths, plus slash and dot cleanup
        self._system_keys = {ntpath.normcase(ntpath.normpath(path)) for path in self.system_paths}

    def is_flagged_identity(self, identity: str) -> bool:
        return identity.casefold() in self._identity_keys

    @staticmethod
    def is_flagged_right(right: str) -> bool:
        ### Only rights that allow writing count
        return right in FLAGGED_RIGHTS

    def is_system_path(self, path: str) -> bool:
        return ntpath.normcase(ntpath.normpath(path)) in self._system_keys

    def is_insecure(self, identity: str, right: str) -> bool:
        ### Both the right and the identity have to be flagged
        return self.is_flagged_right(right) and self.is_flagged_identity(identity)

    ###########################################################################

    """

    Name: action_for

    Function: Pick what to do with one identity/right pair on one path.

    Arguments: path - the folder or file being secured

                identity - the ACE's principal

                right - one right split out of the ACE's mask

    Returns: A RemediationAction

    """

    def action_for(self, path: str, identity: str, right: str) -> RemediationAction:
        if not self.is_insecure(identity, right):
            ### Not our business, leave it alone
            return RemediationAction.SKIP
        ### The built-in Users group keeps read/execute on system paths
        if self.is_system_path(path) and identity.casefold() == BUILTIN_USERS.casefold():
            return RemediationAction.NARROW_TO_READ_EXECUTE
        ### Everywhere else the grant goes away
        return RemediationAction.REMOVE_GRANT

#$ End action_for

#$ End RemediationPolicy
