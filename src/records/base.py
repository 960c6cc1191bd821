"""Record store abstraction: typed repository boundary over tables of dict records."""

from abc import ABC, abstractmethod
from datetime import datetime


class RecordStore(ABC):
    """Abstract record store.

    Records are plain dicts with a string ``id`` key. Implementations raise
    ``errors.RecordStoreError`` (or ``StoreUnavailableError``) on failure and
    never return an empty result in place of an error.
    """

    @abstractmethod
    def get_by_id(self, table: str, record_id: str) -> dict | None:
        ...

    @abstractmethod
    def upsert(self, table: str, record: dict) -> dict:
        """Insert or merge-update a record. Assigns an id when missing."""
        ...

    @abstractmethod
    def query(
        self,
        table: str,
        filter: dict | None = None,
        since: datetime | None = None,
        since_field: str = "created_at",
        order_by: str | None = None,
        descending: bool = True,
        limit: int | None = None,
    ) -> list[dict]:
        """Return records whose fields equal every value in ``filter``.

        A ``None`` filter value matches missing/null fields.
        """
        ...

    @abstractmethod
    def delete(self, table: str, record_id: str) -> bool:
        ...

    def count(self, table: str, filter: dict | None = None, since=None, since_field="created_at") -> int:
        return len(self.query(table, filter=filter, since=since, since_field=since_field))
