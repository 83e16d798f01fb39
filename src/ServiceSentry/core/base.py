# -*- coding: utf-8 -*-

"""

@author: Will D

"""

# This is the core base module. This module will allow the application to:

# 1. Hold the settings for one run (SentryContext)

# 2. Define the backend contract the engine talks to (SecurityBackend)

# 3. Build a RemediationPolicy out of the run settings

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Sequence, Tuple

from .models import AccessEntry, AccessList
from .policy import RemediationPolicy, default_system_paths
from .utils import config_list

###########################################################################

"""

Name: SentryContext

Function: A data class that holds all the settings for one run.

Arguments: None (it's a dataclass, so it's just fields)

Returns: No value returned (it's a class definition)

"""

@dataclass
class SentryContext:
    ### Configuration dictionary loaded from --config
    config: Dict[str, object] = field(default_factory=dict)
    ### Paths where the Users group is narrowed instead of removed
    system_paths: Sequence[str] = field(default_factory=default_system_paths)
    ### Report what's wrong without writing anything back
    audit_only: bool = False
    ### Domain used for "<DOMAIN>\Domain Users" (None means ask the backend)
    domain: str | None = None

    ###########################################################################

    """

    Name: from_config

    Function: Build a context from a config dictionary plus whatever the user

    passed on the command line. Command line system paths are added on top of

    the configured ones, they don't replace them.

    Arguments: config - the parsed JSON config

                extra_system_paths - --system-path values

                audit_only - --audit-only flag

    Returns: A SentryContext

    """

    @classmethod
    def from_config(
        cls,
        config: Dict[str, object],
        extra_system_paths: Sequence[str] = (),
        audit_only: bool = False,
    ) -> "SentryContext":
        ### Configured system paths replace the defaults, if there are any
        system_paths = config_list(config, "system_paths") or default_system_paths()
        ### Then --system-path values go on top
        system_paths = system_paths + [path for path in extra_system_paths if path not in system_paths]
        ### An explicit domain wins over asking the backend
        domain = config.get("domain")
        return cls(
            config=config,
            system_paths=system_paths,
            ### Either the flag or the config can turn audit-only on
            audit_only=audit_only or bool(config.get("audit_only", False)),
            domain=str(domain) if domain else None,
        )

#$ End from_config

    def build_policy(self, backend: "SecurityBackend") -> RemediationPolicy:
        ### Fall back to the machine's own domain
        domain = self.domain or backend.current_domain()
        return RemediationPolicy(
            system_paths=self.system_paths,
            domain=domain,
            extra_identities=config_list(self.config, "extra_identities"),
        )

#$ End SentryContext

###########################################################################

"""

Name: SecurityBackend

Function: Base class for the platform layer. The engine never calls the

operating system directly, it only goes through these methods.

Arguments: None (it's a class definition)

Returns: No value returned

"""

class SecurityBackend:
    """Contract between the remediation engine and the operating system."""

    ### Short name shown in the banner and the report
    name: str = ""

    def list_services(self) -> List[Tuple[str, str, str]]:
        """Return (name, display name, command line) for every service."""
        raise NotImplementedError

    def read_acl(self, path: str) -> AccessList:
        """Read the full ACL of ``path``. Raises AclReadError."""
        raise NotImplementedError

    def protect_acl(self, acl: AccessList) -> None:
        """Disable inheritance, keeping inherited ACEs as explicit ones.

        The ACL passed in is stale afterwards; read it again before mutating.
        Raises InheritanceConversionError.
        """
        raise NotImplementedError

    def remove_grant(self, acl: AccessList, entry: AccessEntry, right: str) -> None:
        """Drop every allow ACE for entry's identity that carries ``right``, then persist.

        Raises RemediationApplyError.
        """
        raise NotImplementedError

    def narrow_grant(self, acl: AccessList, entry: AccessEntry, mask: int) -> None:
        """Replace the identity's allow ACEs with a single grant of ``mask``, then persist.

        Raises RemediationApplyError.
        """
        raise NotImplementedError

    def is_elevated(self) -> bool:
        raise NotImplementedError

    def current_domain(self) -> str | None:
        return None

#$ End SecurityBackend
