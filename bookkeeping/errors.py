from typing import Optional

from bookkeeping.domain import LockKey


class BookkeepingError(Exception):
    """Base class for every error raised by the ledger engine."""


class ValidationError(BookkeepingError):
    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class NotFoundError(BookkeepingError):
    def __init__(self, entity: str, entity_id: str):
        super().__init__(f"{entity} {entity_id!r} does not exist")
        self.entity = entity
        self.entity_id = entity_id


class LockedError(BookkeepingError):
    """A write touched a (month, account, branch) whose books are closed.

    The offending key is kept on the exception so the caller can tell the
    user exactly which account, branch and month is locked.
    """

    def __init__(self, key: LockKey):
        super().__init__(
            f"Books for account {key.account_code} at branch {key.branch} "
            f"in {key.month} are locked"
        )
        self.key = key


class DocumentStoreError(BookkeepingError):
    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class SettingsLoadError(BookkeepingError):
    pass
