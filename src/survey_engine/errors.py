from __future__ import annotations

from typing import Any, Optional


class SurveyEngineError(Exception):
    """Base class for every error raised by the engine."""


class ValidationError(SurveyEngineError):
    """User input is malformed; never retried."""

    def __init__(self, field: str, value: Any, message: str) -> None:
        super().__init__(f"{field}: {message} (got {value!r})")
        self.field = field
        self.value = value


class InvalidEmail(ValidationError):
    def __init__(self, value: Any) -> None:
        super().__init__("email", value, "expected an address like local@domain.tld")


class EmptyUsername(ValidationError):
    def __init__(self, value: Any) -> None:
        super().__init__("username", value, "must not be empty")


class WeakCredential(ValidationError):
    def __init__(self, length: Optional[int], minimum: int) -> None:
        # The secret itself is never echoed back
        super().__init__("password", length, f"must be at least {minimum} characters")
        self.minimum = minimum


class FutureDate(ValidationError):
    def __init__(self, value: Any) -> None:
        super().__init__("created_on", value, "must not be in the future")


class EmailTaken(ValidationError):
    def __init__(self, value: Any) -> None:
        super().__init__("email", value, "is already registered")


class MissingField(ValidationError):
    def __init__(self, field: str, value: Any = None) -> None:
        super().__init__(field, value, "is required")


class ConsistencyError(SurveyEngineError):
    """Referential integrity is broken; a collaborator bug, not user error."""


class DanglingReference(ConsistencyError):
    def __init__(self, entity: str, entity_id: Any, referenced_by: str) -> None:
        super().__init__(f"{referenced_by} points at missing {entity} #{entity_id}")
        self.entity = entity
        self.entity_id = entity_id
        self.referenced_by = referenced_by


class NotFound(SurveyEngineError):
    def __init__(self, entity: str, entity_id: Any) -> None:
        super().__init__(f"{entity} #{entity_id} not found")
        self.entity = entity
        self.entity_id = entity_id


class TransientWriteError(SurveyEngineError):
    def __init__(self, operation: str, attempts: int) -> None:
        super().__init__(f"{operation} kept conflicting after {attempts} attempts")
        self.operation = operation
        self.attempts = attempts


class PolicyError(SurveyEngineError):
    """A configured policy rejected the operation."""


class DuplicateVote(PolicyError):
    def __init__(self, user_id: int, scope: str, scope_id: int) -> None:
        super().__init__(f"user #{user_id} already voted in {scope} #{scope_id}")
        self.user_id = user_id
        self.scope = scope
        self.scope_id = scope_id


class SurveyHasVotes(PolicyError):
    def __init__(self, survey_id: int, votes: int) -> None:
        super().__init__(f"survey #{survey_id} has {votes} votes and cannot be deleted")
        self.survey_id = survey_id
        self.votes = votes
