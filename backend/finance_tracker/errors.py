class FinanceTrackerError(Exception):
    """Base class for every failure raised by the tracker core."""


class RecordValidationError(FinanceTrackerError):
    """Input was rejected before any storage access."""


class InvalidEntityKind(RecordValidationError):
    def __init__(self, kind: object) -> None:
        super().__init__(f"Invalid table name: {kind}")
        self.kind = kind


class StorageError(FinanceTrackerError):
    """The backing database could not be read or written."""


class StoreUnavailable(StorageError):
    def __init__(self, path: object, cause: object) -> None:
        super().__init__(f"Failed to initialize database. Path: {path} Error: {cause}")
        self.path = path
        self.cause = cause


class CredentialError(FinanceTrackerError):
    """Password verification failed."""


class NoCredentialConfigured(CredentialError):
    def __init__(self) -> None:
        super().__init__("No password set")
