"""Privileged process host: pty ownership and spawn policy."""

from .policy import PLATFORM_POLICIES, ShellPolicy, policy_for_platform, sanitize_env
from .supervisor import HostSupervisor, SpawnRejected

__all__ = [
    "HostSupervisor",
    "PLATFORM_POLICIES",
    "policy_for_platform",
    "sanitize_env",
    "ShellPolicy",
    "SpawnRejected",
]
