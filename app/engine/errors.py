"""
Engine exception taxonomy.

Invalid state transitions are NOT exceptions — the scheduler logs and
ignores them. These cover the cases that are refused at a boundary.
"""


class EngineError(Exception):
    """Base class for errors raised by the orchestration engine."""


class AssessmentNotFoundError(EngineError):
    def __init__(self, assessment_id):
        self.assessment_id = assessment_id
        super().__init__(f"Assessment {assessment_id} not found")


class DuplicateJobError(EngineError):
    """Refused: an analysis job for this domain is already queued or processing."""
    def __init__(self, assessment_id, domain_name, job_id=None):
        self.assessment_id = assessment_id
        self.domain_name = domain_name
        self.job_id = job_id
        super().__init__(
            f"Outstanding analysis job already exists for {assessment_id}/{domain_name}"
        )


class NoAgentAvailableError(EngineError):
    def __init__(self, domain_name):
        self.domain_name = domain_name
        super().__init__(f"No active agent available for domain '{domain_name}'")


class AssessmentLockedError(EngineError):
    """Responses or documents submitted after the questionnaire closed."""
    def __init__(self, assessment_id, status):
        self.assessment_id = assessment_id
        self.status = status
        super().__init__(f"Assessment {assessment_id} is '{status}' and no longer accepts changes")


class AgentResponseError(EngineError):
    """The agent returned something that cannot be written to a domain."""
