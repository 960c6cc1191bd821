"""Error taxonomy for the reconciliation core."""


class TaskweaveError(Exception):
    """Base error."""


class TransientExternalError(TaskweaveError):
    """Network failure or timeout on an embedding, LLM or store call."""


class MalformedResponseError(TaskweaveError):
    """LLM returned output that does not match the expected schema."""


class RecordStoreError(TaskweaveError):
    """Record store query or write failed."""


class RecordNotFoundError(RecordStoreError):
    """A referenced record id no longer exists."""

    def __init__(self, table: str, record_id: str):
        super().__init__(f"{table}/{record_id} not found")
        self.table = table
        self.record_id = record_id


class StoreUnavailableError(RecordStoreError):
    """The record store cannot be reached at all."""


class InvariantViolationError(TaskweaveError):
    """Programmer error: a data invariant was broken."""
