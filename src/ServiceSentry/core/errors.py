# -*- coding: utf-8 -*-

"""

@author: Will D

"""

# This is the errors module. EnumerationError, AclReadError, RunAbortedError
# and PrivilegeError abort the whole run. InheritanceConversionError and
# RemediationApplyError are caught per ACE by the corrector and turned into
# status lines.

from __future__ import annotations


class SentryError(Exception):
    """Base error. ``item`` names the service or path that was being handled."""

    def __init__(self, message: str, item: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.item = item

    def __str__(self) -> str:
        if self.item:
            return f"{self.message} (item: {self.item})"
        return self.message


class EnumerationError(SentryError):
    """The service list could not be fetched or came back empty."""


class AclReadError(SentryError):
    """The ACL of a path could not be read."""


class RunAbortedError(SentryError):
    """An unexpected error escaped the per-service loop."""


class PrivilegeError(SentryError):
    """The process is not running with administrative rights."""


class InheritanceConversionError(SentryError):
    """Disabling inheritance on a path failed."""


class RemediationApplyError(SentryError):
    """Removing or narrowing one grant failed."""
