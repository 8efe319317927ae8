"""
Error taxonomy for the intent workflow engine
"""


class WorkflowError(ValueError):
    """Base class for all workflow errors"""


class ValidationError(WorkflowError):
    """Malformed, missing or conflicting request fields"""

    def __init__(self, message: str, field: str = None):
        super().__init__(message)
        self.field = field


class ResolutionError(WorkflowError):
    """Ambiguous symbol, unknown resource or out-of-range candidate"""


class ConflictError(ResolutionError):
    """Two references to the same resource disagree"""


class SafetyError(WorkflowError):
    """A safety bound is less protective than allowed"""


class AuthorizationError(WorkflowError):
    """Production execution was not confirmed"""


class CollaboratorError(WorkflowError):
    """No external collaborator is available for an intent type"""
