"""
Custom exception classes for the Content Co-Pilot.

Agent-level failures are contained (an agent returns an empty or partial
suggestion list), while workflow action failures are recorded on the
execution record so operators can see them.

Hierarchy:
    Exception
    +-- AgentBaseError (base for all agent-specific errors)
    |   +-- AnalysisError
    |   +-- UnknownTypeError
    +-- ValidationError (ValueError)
    |   +-- FormatError
    +-- DatabaseError
    +-- ConfigurationError
    +-- TransientCollaboratorError
    +-- WorkflowActionError
    +-- RetryExhaustedError
"""

from typing import Optional


# =============================================================================
# BASE EXCEPTION
# =============================================================================


class AgentBaseError(Exception):
    """Base exception for all agent-related errors."""

    pass


# =============================================================================
# CORE EXCEPTIONS
# =============================================================================


class ValidationError(ValueError):
    """Raised when input validation fails."""

    pass


class DatabaseError(Exception):
    """Raised when database operations fail."""

    pass


class ConfigurationError(Exception):
    """Raised when required configuration is missing or invalid.

    Example: an agent that needs an AI model has none configured.
    """

    pass


class RetryExhaustedError(Exception):
    """Raised when all retry attempts have been exhausted.

    Attributes:
        operation: Name of the operation that was retried.
        attempts: Total number of attempts made.
        last_error: The last exception raised before giving up.
    """

    def __init__(self, operation: str, attempts: int, last_error: Exception):
        self.operation = operation
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(
            f"{operation} failed after {attempts} attempts. "
            f"Last error: {last_error}"
        )


# =============================================================================
# COLLABORATOR EXCEPTIONS
# =============================================================================


class FormatError(ValidationError):
    """Raised when an AI response cannot be parsed as a JSON object.

    Attributes:
        raw_excerpt: The first characters of the offending response.
    """

    def __init__(self, message: str, raw_excerpt: str = ""):
        self.raw_excerpt = raw_excerpt
        super().__init__(message)


class TransientCollaboratorError(Exception):
    """Raised when the content store or AI collaborator fails transiently.

    Attributes:
        collaborator: Name of the collaborator that failed.
    """

    def __init__(self, collaborator: str, message: str):
        self.collaborator = collaborator
        super().__init__(f"{collaborator}: {message}")


# =============================================================================
# AGENT EXCEPTIONS
# =============================================================================


class AnalysisError(AgentBaseError):
    """Raised (or returned) when an agent strategy cannot finish its analysis.

    Attributes:
        agent_name: Name of the agent instance.
        cause: The underlying exception, if any.
    """

    def __init__(
        self, agent_name: str, message: str, cause: Optional[Exception] = None
    ):
        self.agent_name = agent_name
        self.cause = cause
        super().__init__(f"Agent '{agent_name}' analysis failed: {message}")


class UnknownTypeError(AgentBaseError):
    """Raised when an unregistered agent type is resolved."""

    def __init__(self, agent_type: str):
        self.agent_type = agent_type
        super().__init__(f"Agent type '{agent_type}' is not registered")


# =============================================================================
# WORKFLOW EXCEPTIONS
# =============================================================================


class WorkflowActionError(Exception):
    """Raised when a workflow action cannot be carried out.

    Attributes:
        action_type: The action type value (e.g. ``"auto_approve"``).
    """

    def __init__(self, action_type: str, message: str):
        self.action_type = action_type
        super().__init__(f"Action '{action_type}' failed: {message}")


# =============================================================================
# PUBLIC API
# =============================================================================

__all__ = [
    # Base
    "AgentBaseError",
    # Core
    "ValidationError",
    "DatabaseError",
    "ConfigurationError",
    "RetryExhaustedError",
    # Collaborators
    "FormatError",
    "TransientCollaboratorError",
    # Agents
    "AnalysisError",
    "UnknownTypeError",
    # Workflows
    "WorkflowActionError",
]
