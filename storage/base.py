"""
Abstract document store interface.

The order lifecycle, cart recorder and message log depend only on this
interface. Backends (in-memory, SQLite, Firestore) are swappable.

Rules:
- Documents are plain dicts keyed by (collection, doc_id)
- Transactions are single-document read-modify-write
- Writes inside a transaction apply only when the transaction function returns
- Query filters are (field, op, value) tuples
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Iterable, Optional, Sequence, TypeVar


FILTER_OPERATORS = ("==", "<", "<=", ">", ">=")

QueryFilter = tuple[str, str, Any]

T = TypeVar("T")


class DocumentNotFoundError(Exception):
    """Update targeted a document that does not exist."""
    pass


@dataclass
class Document:
    """A snapshot of one stored document."""

    collection: str
    id: str
    data: dict[str, Any] = field(default_factory=dict)

    @property
    def path(self) -> str:
        return f"{self.collection}/{self.id}"


def split_path(path: str) -> tuple[str, str]:
    """Split 'collection/doc_id' into its parts."""
    collection, _, doc_id = path.partition("/")
    if not collection or not doc_id:
        raise ValueError(f"Invalid document path: {path!r}")
    return collection, doc_id


def check_filters(filters: Sequence[QueryFilter]) -> None:
    for _, op, _ in filters:
        if op not in FILTER_OPERATORS:
            raise ValueError(f"Unsupported filter operator: {op}")


def matches(data: dict[str, Any], filters: Sequence[QueryFilter]) -> bool:
    """Evaluate query filters against a document body."""
    for field_name, op, value in filters:
        if op not in FILTER_OPERATORS:
            raise ValueError(f"Unsupported filter operator: {op}")
        if field_name not in data:
            return False
        current = data[field_name]
        if op == "==":
            if current != value:
                return False
            continue
        if current is None or value is None:
            return False
        try:
            if op == "<" and not current < value:
                return False
            if op == "<=" and not current <= value:
                return False
            if op == ">" and not current > value:
                return False
            if op == ">=" and not current >= value:
                return False
        except TypeError:
            return False
    return True


class Transaction(ABC):
    """
    Read-modify-write handle passed to run_transaction callbacks.

    Reads go straight to the store. Writes are buffered and committed
    together when the callback returns.
    """

    @abstractmethod
    async def get(self, collection: str, doc_id: str) -> Optional[Document]:
        raise NotImplementedError

    @abstractmethod
    def set(self, collection: str, doc_id: str, data: dict[str, Any], merge: bool = False) -> None:
        raise NotImplementedError

    @abstractmethod
    def update(self, collection: str, doc_id: str, data: dict[str, Any]) -> None:
        raise NotImplementedError


class DocumentStore(ABC):
    """
    Abstract document database boundary.
    Domain code must depend ONLY on this interface.
    """

    @abstractmethod
    async def get(self, collection: str, doc_id: str) -> Optional[Document]:
        """Read one document, or None if it does not exist."""
        raise NotImplementedError

    @abstractmethod
    async def set(
        self,
        collection: str,
        doc_id: str,
        data: dict[str, Any],
        merge: bool = False,
    ) -> None:
        """Create or replace a document. With merge=True, fields are merged into the existing body."""
        raise NotImplementedError

    @abstractmethod
    async def update(self, collection: str, doc_id: str, data: dict[str, Any]) -> None:
        """
        Merge fields into an existing document.

        Raises:
            DocumentNotFoundError: If the document does not exist
        """
        raise NotImplementedError

    @abstractmethod
    async def add(self, collection: str, data: dict[str, Any]) -> str:
        """Insert a document under a generated id and return the id."""
        raise NotImplementedError

    @abstractmethod
    async def delete_many(self, paths: Iterable[str]) -> int:
        """Delete documents by 'collection/doc_id' path in one batch. Returns the count requested."""
        raise NotImplementedError

    @abstractmethod
    async def query(
        self,
        collection: str,
        filters: Sequence[QueryFilter] = (),
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> list[Document]:
        """Run an equality/range query over one collection."""
        raise NotImplementedError

    @abstractmethod
    async def stream(self, collection: str) -> list[Document]:
        """Read every document of a collection."""
        raise NotImplementedError

    @abstractmethod
    async def run_transaction(self, fn: Callable[[Transaction], Awaitable[T]]) -> T:
        """
        Run fn inside a transaction and return its result.

        Buffered writes are applied atomically after fn returns.
        If fn raises, nothing is written and the exception propagates.
        """
        raise NotImplementedError

    async def close(self) -> None:
        """Release backend resources."""
        return None
