class BillError(Exception):
    """Base class for bill lifecycle errors."""

    error_kind = "bill"


class RuleValidationError(BillError):
    """Recurrence rule is missing or has an out-of-range day/month for its kind."""

    error_kind = "validation"


class InvalidRecurrenceError(BillError):
    """A recurring bill has no computable successor (e.g. custom rules)."""

    error_kind = "recurrence"


class StorageError(BillError):
    """Any failure reading or writing bill records."""

    error_kind = "storage"


class SyncError(BillError):
    """Any failure talking to the external calendar. Never fatal to the caller."""

    error_kind = "sync"
