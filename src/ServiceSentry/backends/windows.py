# -*- coding: utf-8 -*-

"""

@author: Will D

"""

# This is the Windows backend. This module will allow the application to:

# 1. List every Win32 service and its command line through the service manager

# 2. Read file and folder DACLs and name every ACE's principal

# 3. Disable inheritance while keeping the inherited ACEs as explicit ones

# 4. Delete or narrow single grants and write the DACL back

# 5. Tell whether the current process token is elevated

from __future__ import annotations

from typing import List, Optional, Tuple

from ServiceSentry.core.base import SecurityBackend
from ServiceSentry.core.errors import (
    AclReadError,
    EnumerationError,
    InheritanceConversionError,
    RemediationApplyError,
)
from ServiceSentry.core.models import AccessEntry, AccessList
from ServiceSentry.core.policy import RIGHT_MASKS

HAS_WIN32 = False
try:
    import pywintypes
    import win32api
    import win32security
    import win32service

    HAS_WIN32 = True
except ImportError:
    pass

### ACE header values (winnt.h), so the helpers below don't need pywin32 loaded
ACCESS_ALLOWED_ACE_TYPE = 0
ACCESS_DENIED_ACE_TYPE = 1
INHERITED_ACE = 0x10


def _error_text(exc: Exception) -> str:
    ### pywintypes.error carries the readable part in strerror
    return getattr(exc, "strerror", None) or str(exc)


###########################################################################

"""

Name: Win32Backend

Function: SecurityBackend built on pywin32. Services come from the service

control manager, ACLs from GetNamedSecurityInfo/SetNamedSecurityInfo.

Arguments: None (it's a class definition)

Returns: No value returned

"""

class Win32Backend(SecurityBackend):
    name = "win32"

    ###########################################################################

    """

    Name: list_services

    Function: Enumerate every Win32 service (drivers excluded) and read its

    binary path. A service whose config can't be queried gets an empty

    command line, which the engine treats as nothing to do.

    Arguments: None

    Returns: List of (name, display name, command line) triples

    """

    def list_services(self) -> List[Tuple[str, str, str]]:
        try:
            ### Connect to the local service control manager, read-only
            scm = win32service.OpenSCManager(None, None, win32service.SC_MANAGER_ENUMERATE_SERVICE)
        except pywintypes.error as exc:
            raise EnumerationError(f"Unable to open the service manager: {_error_text(exc)}", item="services") from exc
        try:
            ### EnumServicesStatusEx(handle, service type, service state)
            statuses = win32service.EnumServicesStatusEx(
                scm,
                win32service.SERVICE_WIN32,
                win32service.SERVICE_STATE_ALL,
            )
            ### Pair every service with its binary path
            services = []
            for status in statuses:
                name = status["ServiceName"]
                services.append((name, status["DisplayName"], self._command_line(scm, name)))
            return services
        except pywintypes.error as exc:
            raise EnumerationError(f"Unable to enumerate services: {_error_text(exc)}", item="services") from exc
        finally:
            ### Hand the manager handle back no matter what
            win32service.CloseServiceHandle(scm)

#$ End list_services

    @staticmethod
    def _command_line(scm: object, name: str) -> str:
        try:
            ### Some services won't even let us look, that's not fatal
            handle = win32service.OpenService(scm, name, win32service.SERVICE_QUERY_CONFIG)
        except pywintypes.error:
            return ""
        try:
            ### QueryServiceConfig -> (type, start, error control, binary path, ...)
            return win32service.QueryServiceConfig(handle)[3] or ""
        except pywintypes.error:
            return ""
        finally:
            ### Close the service handle too
            win32service.CloseServiceHandle(handle)

    ###########################################################################

    """

    Name: read_acl

    Function: Read the DACL of a file or folder and describe each ACE. A NULL

    DACL is returned as an empty list because there is no ACE to remove.

    Arguments: path - the file or folder

    Returns: AccessList with the raw PyACL kept as the handle

    """

    def read_acl(self, path: str) -> AccessList:
        try:
            ### Only the DACL, we don't care about owner or SACL
            sd = win32security.GetNamedSecurityInfo(
                path, win32security.SE_FILE_OBJECT, win32security.DACL_SECURITY_INFORMATION
            )
        except pywintypes.error as exc:
            raise AclReadError(f"Unable to read ACL: {_error_text(exc)}", item=path) from exc
        ### A NULL DACL comes back as None
        dacl = sd.GetSecurityDescriptorDacl()
        if dacl is None:
            dacl = win32security.ACL()
        ### SE_DACL_PROTECTED means inheritance is already off
        control, _revision = sd.GetSecurityDescriptorControl()
        acl = AccessList(path=path, protected=bool(control & win32security.SE_DACL_PROTECTED), handle=dacl)
        ### Turn every ACE into an AccessEntry
        acl.entries = self._describe(dacl)
        return acl

#$ End read_acl

    def _describe(self, dacl: object) -> List[AccessEntry]:
        entries = []
        for index in range(dacl.GetAceCount()):
            (ace_type, ace_flags), mask, sid = dacl.GetAce(index)[:3]
            ### Object and callback ACEs don't show up on plain files
            if ace_type not in (ACCESS_ALLOWED_ACE_TYPE, ACCESS_DENIED_ACE_TYPE):
                continue
            entries.append(
                AccessEntry(
                    identity=self._account_name(sid),
                    ### pywin32 can hand masks back as signed ints
                    mask=mask & 0xFFFFFFFF,
                    is_inherited=bool(ace_flags & INHERITED_ACE),
                    allow=ace_type == ACCESS_ALLOWED_ACE_TYPE,
                    sid=win32security.ConvertSidToStringSid(sid),
                    flags=ace_flags,
                )
            )
        return entries

    @staticmethod
    def _account_name(sid: object) -> str:
        try:
            name, domain, _kind = win32security.LookupAccountSid(None, sid)
        except pywintypes.error:
            ### Orphaned SIDs have no name, show the SID itself
            return win32security.ConvertSidToStringSid(sid)
        ### Well-known groups like Everyone have no domain part
        return f"{domain}\\{name}" if domain else name

    ###########################################################################

    """

    Name: protect_acl

    Function: Disable inheritance on the path. Inherited ACEs are copied in as

    explicit ones (denies first, then allows) so nothing is lost. The acl is

    updated in place, but callers still read it again afterwards. Any ACE that

    is not a plain allow or deny stops the conversion before anything is saved.

    Arguments: acl - the AccessList to convert

    Returns: No value returned

    """

    def protect_acl(self, acl: AccessList) -> None:
        dacl = acl.handle
        explicit = win32security.ACL()
        aces = [dacl.GetAce(index) for index in range(dacl.GetAceCount())]
        ### Object and callback ACEs can't be copied with the calls below
        for (ace_type, _flags), _mask, _sid in (ace[:3] for ace in aces):
            if ace_type not in (ACCESS_ALLOWED_ACE_TYPE, ACCESS_DENIED_ACE_TYPE):
                raise InheritanceConversionError(
                    f"Unsupported ACE type {ace_type} would be lost, leaving inheritance on", item=acl.path
                )
        ### Denies first, then allows
        for wanted in (ACCESS_DENIED_ACE_TYPE, ACCESS_ALLOWED_ACE_TYPE):
            for (ace_type, ace_flags), mask, sid in (ace[:3] for ace in aces):
                if ace_type != wanted:
                    continue
                ### Same flags, minus the inherited bit
                flags = ace_flags & ~INHERITED_ACE
                if wanted == ACCESS_DENIED_ACE_TYPE:
                    explicit.AddAccessDeniedAceEx(win32security.ACL_REVISION_DS, flags, mask, sid)
                else:
                    explicit.AddAccessAllowedAceEx(win32security.ACL_REVISION_DS, flags, mask, sid)
        try:
            ### Write it back with inheritance switched off
            self._save(acl.path, explicit, protected=True)
        except pywintypes.error as exc:
            raise InheritanceConversionError(_error_text(exc), item=acl.path) from exc
        ### Keep the in-memory copy in line with what we saved
        acl.handle = explicit
        acl.protected = True
        acl.entries = self._describe(explicit)

#$ End protect_acl

    ###########################################################################

    """

    Name: remove_grant

    Function: Delete every allow ACE for the entry's principal that carries the

    given right, then write the DACL back.

    Arguments: acl - the AccessList to edit

                entry - the insecure ACE (its SID picks the principal)

                right - right name, like "Modify"

    Returns: No value returned

    """

    def remove_grant(self, acl: AccessList, entry: AccessEntry, right: str) -> None:
        ### The bits an ACE must carry to count
        right_mask = RIGHT_MASKS[right]
        dacl = acl.handle
        ### Walk backwards so deleting doesn't shift the indexes still ahead of us
        for index in reversed(range(dacl.GetAceCount())):
            (ace_type, _flags), mask, sid = dacl.GetAce(index)[:3]
            if ace_type != ACCESS_ALLOWED_ACE_TYPE or mask & right_mask != right_mask:
                continue
            if self._same_principal(sid, entry):
                self._delete(acl, index)
        ### Write the edited DACL back and refresh the entries
        self._persist(acl)

#$ End remove_grant

    ###########################################################################

    """

    Name: narrow_grant

    Function: Swap the principal's explicit allow ACEs for one allow ACE with

    the given mask, keeping the propagation flags of the ACE it replaces.

    Arguments: acl - the AccessList to edit

                entry - the insecure ACE

                mask - the access mask to leave behind

    Returns: No value returned

    """

    def narrow_grant(self, acl: AccessList, entry: AccessEntry, mask: int) -> None:
        dacl = acl.handle
        ### Flags of the ACE being replaced, if we find one
        flags: Optional[int] = None
        for index in reversed(range(dacl.GetAceCount())):
            (ace_type, ace_flags), _mask, sid = dacl.GetAce(index)[:3]
            if ace_type != ACCESS_ALLOWED_ACE_TYPE or ace_flags & INHERITED_ACE:
                continue
            if self._same_principal(sid, entry):
                flags = ace_flags
                self._delete(acl, index)
        if flags is None:
            ### No explicit ACE to copy from, use the entry's own flags
            flags = entry.flags & ~INHERITED_ACE
        try:
            ### Add the narrowed grant back for the same SID
            sid = win32security.ConvertStringSidToSid(entry.sid)
            dacl.AddAccessAllowedAceEx(win32security.ACL_REVISION_DS, flags, mask, sid)
        except pywintypes.error as exc:
            raise RemediationApplyError(_error_text(exc), item=acl.path) from exc
        self._persist(acl)

#$ End narrow_grant

    @staticmethod
    def _delete(acl: AccessList, index: int) -> None:
        try:
            acl.handle.DeleteAce(index)
        except pywintypes.error as exc:
            raise RemediationApplyError(_error_text(exc), item=acl.path) from exc

    def _persist(self, acl: AccessList) -> None:
        try:
            self._save(acl.path, acl.handle, protected=acl.protected)
        except pywintypes.error as exc:
            raise RemediationApplyError(_error_text(exc), item=acl.path) from exc
        acl.entries = self._describe(acl.handle)

    @staticmethod
    def _save(path: str, dacl: object, protected: bool) -> None:
        ### We only ever write the DACL
        sec_info = win32security.DACL_SECURITY_INFORMATION
        ### Protected blocks inheritance, unprotected lets it flow again
        if protected:
            sec_info |= win32security.PROTECTED_DACL_SECURITY_INFORMATION
        else:
            sec_info |= win32security.UNPROTECTED_DACL_SECURITY_INFORMATION
        win32security.SetNamedSecurityInfo(path, win32security.SE_FILE_OBJECT, sec_info, None, None, dacl, None)

    def _same_principal(self, sid: object, entry: AccessEntry) -> bool:
        ### SIDs are exact, names are the fallback
        if entry.sid:
            return win32security.ConvertSidToStringSid(sid) == entry.sid
        return self._account_name(sid).casefold() == entry.identity.casefold()

    ###########################################################################

    """

    Name: is_elevated

    Function: Ask the process token whether it is elevated.

    Arguments: None

    Returns: Boolean - True when running as administrator

    """

    def is_elevated(self) -> bool:
        try:
            ### Open our own token just to look at it
            token = win32security.OpenProcessToken(win32api.GetCurrentProcess(), win32security.TOKEN_QUERY)
        except pywintypes.error:
            return False
        try:
            ### Non-zero TokenElevation means we're elevated
            return bool(win32security.GetTokenInformation(token, win32security.TokenElevation))
        except pywintypes.error:
            return False
        finally:
            ### Always hand the token handle back
            win32api.CloseHandle(token)

#$ End is_elevated

    def current_domain(self) -> str | None:
        try:
            ### Workgroup machines give back the workgroup name
            return win32api.GetDomainName() or None
        except pywintypes.error:
            return None

#$ End Win32Backend
