# maintenance_os/errors.py
"""Domain exceptions.

Backend exceptions (aiohttp, httpx, playwright, subprocess, OSError) are
translated into this hierarchy at the backend boundary so the runner only
has to reason about one family of errors.
"""


class AuditError(Exception):
    """Base class for every error raised by the audit pipeline."""


class AuditBackendError(AuditError):
    """The audit engine failed to produce a result for this attempt."""


class TransientAcquisitionFailure(AuditBackendError):
    """Browser/process launch or hosted API acquisition failed."""


class NavigationTimeout(AuditBackendError):
    """The page did not reach a stable state before the timeout."""


class PersistenceFailure(AuditError):
    """Writing an artifact to the report directory failed."""


class TargetRegistryError(Exception):
    """Base class for target registry errors."""


class DuplicateTargetError(TargetRegistryError):
    pass


class TargetNotFoundError(TargetRegistryError):
    pass


class StaticTargetError(TargetRegistryError):
    """Raised when removing a target that comes from static settings."""
