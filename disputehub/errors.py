"""
Shared error types.

Route handlers translate these into HTTP responses; service code raises them
instead of returning ad-hoc error dicts.
"""


class DisputeHubError(Exception):
    """Base class for domain errors."""


class CaseNotFoundError(DisputeHubError):
    """Raised when a dispute does not exist."""


class StrategyLockedError(DisputeHubError):
    """Raised when the conversational path tries to change a locked strategy."""


class EvidenceNotFoundError(DisputeHubError):
    """Raised when an evidence item does not exist."""


class DocumentNotFoundError(DisputeHubError):
    """Raised when a generated document does not exist."""


class DocumentNotRetryableError(DisputeHubError):
    """Raised when a document is not FAILED or has used up its retries."""


class DocumentStateError(DisputeHubError):
    """Raised when a document is in the wrong status for an operation."""


class DocumentGenerationError(DisputeHubError):
    """Raised when the generation collaborator fails for one document."""
