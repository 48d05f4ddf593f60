"""
Error taxonomy for the lead distribution engine.

Every engine error carries a machine readable ``kind`` which is what callers
see in failed ``AssignmentResult`` objects and API responses.
"""


class LeadEngineError(Exception):
    """Base exception for the engine"""
    kind = "engine_error"

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message or self.__class__.__doc__ or self.kind


class NoEligibleAgent(LeadEngineError):
    """Pool is empty or every member is ineligible"""
    kind = "no_eligible_agent"


class AgentExcluded(LeadEngineError):
    """Target agent is inactive, unavailable or excluded from assignment"""
    kind = "agent_excluded"


class UnknownAgent(LeadEngineError, LookupError):
    """Agent id does not resolve"""
    kind = "unknown_agent"


class LeadNotFound(LeadEngineError, LookupError):
    """Lead does not exist or is soft-deleted"""
    kind = "lead_not_found"


class AssignmentNotFound(LeadEngineError, LookupError):
    """No open assignment matches the lead/agent pair"""
    kind = "assignment_not_found"


class AgentAlreadyInPool(LeadEngineError, ValueError):
    """Agent is already a member of the source pool"""
    kind = "agent_already_in_pool"


class AgentNotInPool(LeadEngineError, LookupError):
    """Agent is not a member of the source pool"""
    kind = "agent_not_in_pool"


class ConcurrentModification(LeadEngineError):
    """Ring or assignment state changed between read and write"""
    kind = "concurrent_modification"


class TransientStoreError(LeadEngineError):
    """Store I/O failed; the job's next tick retries"""
    kind = "transient_store_error"


class JobNotFound(LeadEngineError, LookupError):
    """No job registered under that name"""
    kind = "job_not_found"


class InvalidTransition(LeadEngineError, ValueError):
    """Assignment is no longer pending and cannot be accepted or rejected"""
    kind = "invalid_transition"


class SourceNotFound(LeadEngineError, LookupError):
    """Source does not exist"""
    kind = "source_not_found"


class CandidateChanged(LeadEngineError):
    """Lead no longer matches the job's selection criteria"""
    kind = "candidate_changed"


def _all_errors(cls):
    for sub in cls.__subclasses__():
        yield sub
        yield from _all_errors(sub)


def error_for_kind(kind: str, message: str = "") -> LeadEngineError:
    """Rebuild the typed error from a failed result's ``error_kind``."""
    for cls in _all_errors(LeadEngineError):
        if cls.kind == kind:
            return cls(message)
    return LeadEngineError(message)
