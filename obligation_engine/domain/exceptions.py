"""Domain-specific exceptions"""

from datetime import date


class DomainException(Exception):
    """Base exception for domain layer"""

    pass


class ValidationError(DomainException):
    """Caller supplied data that violates an engine contract"""

    pass


class InvalidRecurrenceError(ValidationError):
    """Unknown frequency unit or non-positive interval"""

    pass


class InvalidAmortizationError(ValidationError):
    """Amortized expense with missing or non-positive parameters"""

    pass


class InvalidObligationError(ValidationError):
    """Obligation fields form an invalid combination or edit"""

    pass


class ObligationNotFoundError(DomainException):
    """Requested obligation does not exist"""

    pass


class DataIntegrityError(DomainException):
    """Persisted series is inconsistent"""

    pass


class OrphanedInstanceError(DataIntegrityError):
    """Child instance points to a root that no longer exists"""

    def __init__(self, obligation_id: str, root_id: str):
        super().__init__(f"Obligation {obligation_id} references missing root {root_id}")
        self.obligation_id = obligation_id
        self.root_id = root_id


class NonAdvancingDateError(DomainException):
    """Date arithmetic produced a step that is not strictly later"""

    def __init__(self, previous: date, current: date):
        super().__init__(f"Date did not advance: {previous.isoformat()} -> {current.isoformat()}")
        self.previous = previous
        self.current = current


class SeriesGenerationError(DomainException):
    """Generation for a single root was aborted"""

    def __init__(self, root_id: str, reason: str):
        super().__init__(f"Series generation failed for root {root_id}: {reason}")
        self.root_id = root_id
        self.reason = reason
