"""Platform backends."""
from __future__ import annotations

import sys

from ServiceSentry.core.base import SecurityBackend
from ServiceSentry.core.errors import SentryError

from .windows import HAS_WIN32, Win32Backend


def default_backend() -> SecurityBackend:
    ### Only Windows has service DACLs, and we need pywin32 to reach them
    if sys.platform != "win32" or not HAS_WIN32:
        raise SentryError("ServiceSentry needs Windows with pywin32 installed", item=sys.platform)
    return Win32Backend()
