from __future__ import annotations
"""Domain error taxonomy."""


class AccessError(RuntimeError):
    """Repository root is missing or unreadable; no partial audit is possible."""


class UnknownEcosystemError(LookupError):
    """No capability set is registered for the requested ecosystem."""

    def __init__(self, ecosystem: str) -> None:
        super().__init__(f"No capability set registered for ecosystem '{ecosystem}'")
        self.ecosystem = ecosystem


class CapabilityConfigError(ValueError):
    """Static capability configuration is malformed."""


class PlanError(ValueError):
    """Transformation plan cannot be built (unknown dependency, cycle, bad subset)."""


class PlanLockedError(RuntimeError):
    """Plan amendment attempted after execution started."""


class PhaseApplyError(RuntimeError):
    """A phase transformation failed; the executor restores its snapshot."""


class WriteSetViolation(PhaseApplyError):
    """A phase tried to mutate a path outside its declared write-set."""

    def __init__(self, phase_id: str, path: str) -> None:
        super().__init__(f"Phase '{phase_id}' attempted to write outside its write-set: {path}")
        self.phase_id = phase_id
        self.path = path


class VerificationFailure(RuntimeError):
    """Build/test verification failed or timed out after a phase was applied."""

    def __init__(self, detail: str, *, timed_out: bool = False) -> None:
        super().__init__(detail)
        self.detail = detail
        self.timed_out = timed_out


class ApprovalCancelled(RuntimeError):
    """Approval gate was cancelled externally before the operator responded."""


class VersionControlError(RuntimeError):
    """Versioned filesystem command failed."""
