"""Document store collaborators for Shop ERP.

The application talks to a schemaless, collection-oriented document store.
This module defines the contract every backend honors together with two
implementations:

``MemoryDocumentStore``
    Keeps every collection in process memory. It is the injectable fake used
    by tests and the base for persistent backends.

``WorkbookDocumentStore``
    Mirrors the in-memory collections into an Excel workbook through
    :mod:`openpyxl`, one sheet per collection, saving after every commit.

All multi-document writes go through :class:`WriteBatch` (blind writes) or
:meth:`DocumentStore.run_transaction` (read-modify-write). Transactions hold
the store lock for their whole duration, so two concurrent stock adjustments
never read the same pre-update quantity.
"""

from __future__ import annotations

import copy
import operator
import threading
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple, TypeVar

from . import data_manager, log


T = TypeVar("T")

Filter = Tuple[str, str, Any]

_OPERATORS: Dict[str, Callable[[Any, Any], bool]] = {
    "==": operator.eq,
    "!=": operator.ne,
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
}

_WRITE_SET = "set"
_WRITE_CREATE = "create"
_WRITE_UPDATE = "update"
_WRITE_DELETE = "delete"


class StoreError(Exception):
    """Base class for failures reported by a document store."""


class DocumentNotFoundError(StoreError):
    """Raised when a write targets a document that does not exist."""


class StoreUnavailableError(StoreError):
    """Raised when the store cannot be reached (network or file access)."""


class TransactionError(StoreError):
    """Raised when a batch or transaction is used incorrectly."""


@dataclass(frozen=True)
class Document:
    """Snapshot of a stored document: its identifier and a copy of its data."""

    id: str
    data: Dict[str, Any] = field(default_factory=dict)

    def get(self, name: str, default: Any = None) -> Any:
        return self.data.get(name, default)


@dataclass(frozen=True)
class _Write:
    kind: str
    collection: str
    doc_id: str
    data: Optional[Dict[str, Any]] = None


def new_id() -> str:
    """Return a fresh random document identifier."""
    return uuid.uuid4().hex[:20]


def _collection_name(collection: Any) -> str:
    return collection.value if hasattr(collection, "value") else str(collection)


def _matches(data: Mapping[str, Any], filters: Sequence[Filter]) -> bool:
    for name, op, value in filters:
        try:
            compare = _OPERATORS[op]
        except KeyError as exc:
            raise ValueError(f"Unsupported filter operator: {op}") from exc
        # Documents lacking the filtered field never match, mirroring the
        # behavior of hosted document databases.
        if name not in data:
            return False
        # Null values never satisfy a range comparison either.
        if data[name] is None and op not in ("==", "!="):
            return False
        try:
            if not compare(data[name], value):
                return False
        except TypeError as exc:
            raise StoreError(
                f"Cannot compare field '{name}' ({type(data[name]).__name__}) with {type(value).__name__}"
            ) from exc
    return True


def _sort_documents(documents: List[Document], order_by: Optional[str], descending: bool) -> List[Document]:
    if order_by is None:
        return documents
    present = [doc for doc in documents if doc.data.get(order_by) is not None]
    missing = [doc for doc in documents if doc.data.get(order_by) is None]
    try:
        present.sort(key=lambda doc: doc.data[order_by], reverse=descending)
    except TypeError as exc:
        raise StoreError(f"Cannot order documents by '{order_by}': mixed value types") from exc
    return present + missing


class DocumentStore(ABC):
    """Contract shared by every document store backend."""

    @abstractmethod
    def get(self, collection: Any, doc_id: str) -> Optional[Document]:
        """Return the document stored under ``doc_id`` or ``None``."""

    @abstractmethod
    def query(
        self,
        collection: Any,
        filters: Sequence[Filter] = (),
        *,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> List[Document]:
        """Return documents matching every filter, optionally ordered and capped."""

    @abstractmethod
    def run_transaction(self, callback: Callable[["Transaction"], T]) -> T:
        """Run ``callback`` inside an isolated read-modify-write transaction."""

    @abstractmethod
    def _commit(self, writes: Sequence[_Write]) -> None:
        """Apply ``writes`` atomically: all of them or none."""

    def new_id(self) -> str:
        return new_id()

    def add(self, collection: Any, data: Mapping[str, Any]) -> Document:
        doc_id = self.new_id()
        self._commit([_Write(_WRITE_CREATE, _collection_name(collection), doc_id, dict(data))])
        return Document(id=doc_id, data=copy.deepcopy(dict(data)))

    def set(self, collection: Any, doc_id: str, data: Mapping[str, Any]) -> None:
        self._commit([_Write(_WRITE_SET, _collection_name(collection), doc_id, dict(data))])

    def update(self, collection: Any, doc_id: str, fields: Mapping[str, Any]) -> None:
        self._commit([_Write(_WRITE_UPDATE, _collection_name(collection), doc_id, dict(fields))])

    def delete(self, collection: Any, doc_id: str) -> None:
        self._commit([_Write(_WRITE_DELETE, _collection_name(collection), doc_id)])

    def batch(self) -> "WriteBatch":
        return WriteBatch(self)


class _WriteStager:
    """Shared write-staging behavior of batches and transactions."""

    def __init__(self, store: DocumentStore) -> None:
        self._store = store
        self._writes: List[_Write] = []
        self._closed = False

    def _stage(self, write: _Write) -> None:
        if self._closed:
            raise TransactionError("Cannot stage writes after the operation has finished")
        self._writes.append(write)

    def set(self, collection: Any, doc_id: str, data: Mapping[str, Any]) -> None:
        self._stage(_Write(_WRITE_SET, _collection_name(collection), doc_id, dict(data)))

    def create(self, collection: Any, data: Mapping[str, Any], *, doc_id: Optional[str] = None) -> str:
        """Stage the creation of a new document and return its identifier."""
        doc_id = doc_id or self._store.new_id()
        self._stage(_Write(_WRITE_CREATE, _collection_name(collection), doc_id, dict(data)))
        return doc_id

    def update(self, collection: Any, doc_id: str, fields: Mapping[str, Any]) -> None:
        self._stage(_Write(_WRITE_UPDATE, _collection_name(collection), doc_id, dict(fields)))

    def delete(self, collection: Any, doc_id: str) -> None:
        self._stage(_Write(_WRITE_DELETE, _collection_name(collection), doc_id))

    @property
    def pending_writes(self) -> int:
        return len(self._writes)


class WriteBatch(_WriteStager):
    """Group of blind writes committed atomically."""

    def commit(self) -> None:
        if self._closed:
            raise TransactionError("Batch has already been committed")
        self._closed = True
        if not self._writes:
            return
        self._store._commit(self._writes)


class Transaction(_WriteStager):
    """Read-modify-write unit handed to :meth:`DocumentStore.run_transaction`.

    Every read has to happen before the first staged write; the staged writes
    are committed when the callback returns and discarded if it raises.
    """

    def _ensure_readable(self) -> None:
        if self._closed:
            raise TransactionError("Transaction has already finished")
        if self._writes:
            raise TransactionError("Transactions require all reads to be executed before all writes")

    def get(self, collection: Any, doc_id: str) -> Optional[Document]:
        self._ensure_readable()
        return self._store.get(collection, doc_id)

    def query(
        self,
        collection: Any,
        filters: Sequence[Filter] = (),
        *,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> List[Document]:
        self._ensure_readable()
        return self._store.query(collection, filters, order_by=order_by, descending=descending, limit=limit)


class MemoryDocumentStore(DocumentStore):
    """Document store keeping every collection in process memory."""

    def __init__(self, initial: Optional[Mapping[str, Mapping[str, Mapping[str, Any]]]] = None) -> None:
        self._lock = threading.RLock()
        self._collections: Dict[str, Dict[str, Dict[str, Any]]] = {}
        for name, documents in (initial or {}).items():
            self._collections[_collection_name(name)] = {
                doc_id: copy.deepcopy(dict(data)) for doc_id, data in documents.items()
            }

    def get(self, collection: Any, doc_id: str) -> Optional[Document]:
        with self._lock:
            data = self._collections.get(_collection_name(collection), {}).get(doc_id)
            if data is None:
                return None
            return Document(id=doc_id, data=copy.deepcopy(data))

    def query(
        self,
        collection: Any,
        filters: Sequence[Filter] = (),
        *,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> List[Document]:
        with self._lock:
            documents = [
                Document(id=doc_id, data=copy.deepcopy(data))
                for doc_id, data in self._collections.get(_collection_name(collection), {}).items()
                if _matches(data, filters)
            ]
        documents = _sort_documents(documents, order_by, descending)
        if limit is not None:
            documents = documents[:limit]
        return documents

    def run_transaction(self, callback: Callable[[Transaction], T]) -> T:
        with self._lock:
            transaction = Transaction(self)
            try:
                result = callback(transaction)
            except Exception:
                transaction._closed = True
                log.warning("Transaction aborted; %d staged write(s) discarded", transaction.pending_writes)
                raise
            transaction._closed = True
            if transaction._writes:
                self._commit(transaction._writes)
            return result

    def snapshot(self) -> Dict[str, Dict[str, Dict[str, Any]]]:
        """Return a deep copy of every collection, keyed by collection name."""
        with self._lock:
            return copy.deepcopy(self._collections)

    def _commit(self, writes: Sequence[_Write]) -> None:
        with self._lock:
            touched = {write.collection for write in writes}
            staged = {name: copy.deepcopy(self._collections.get(name, {})) for name in touched}
            for write in writes:
                documents = staged[write.collection]
                if write.kind == _WRITE_SET:
                    documents[write.doc_id] = copy.deepcopy(write.data or {})
                elif write.kind == _WRITE_CREATE:
                    if write.doc_id in documents:
                        raise StoreError(f"Document already exists: {write.collection}/{write.doc_id}")
                    documents[write.doc_id] = copy.deepcopy(write.data or {})
                elif write.kind == _WRITE_UPDATE:
                    if write.doc_id not in documents:
                        raise DocumentNotFoundError(f"No document to update: {write.collection}/{write.doc_id}")
                    documents[write.doc_id].update(copy.deepcopy(write.data or {}))
                elif write.kind == _WRITE_DELETE:
                    documents.pop(write.doc_id, None)
                else:
                    raise TransactionError(f"Unknown write kind: {write.kind}")
            self._persist(staged)
            self._collections.update(staged)
            log.debug("Committed %d write(s) across %s", len(writes), ", ".join(sorted(touched)))

    def _persist(self, staged: Mapping[str, Mapping[str, Mapping[str, Any]]]) -> None:
        """Hook for durable backends; called before staged state becomes visible."""


class WorkbookDocumentStore(MemoryDocumentStore):
    """Document store persisted to an Excel workbook, one sheet per collection."""

    def __init__(self, data_file: Path) -> None:
        self.data_file = Path(data_file).expanduser().resolve()
        self._workbook = data_manager.open_workbook(self.data_file)
        initial: Dict[str, Dict[str, Dict[str, Any]]] = {}
        for sheet_name in self._workbook.sheetnames:
            initial[sheet_name] = dict(data_manager.iter_sheet_documents(self._workbook, sheet_name))
        super().__init__(initial)
        log.info(
            "Loaded workbook store '%s' (%d collection(s))",
            self.data_file,
            len(initial),
        )

    def _persist(self, staged: Mapping[str, Mapping[str, Mapping[str, Any]]]) -> None:
        for name, documents in staged.items():
            data_manager.write_sheet_documents(self._workbook, name, documents.items())
        try:
            data_manager.save_workbook(self._workbook, self.data_file)
        except OSError as exc:
            # Roll the workbook object back to the last committed state.
            for name in staged:
                data_manager.write_sheet_documents(
                    self._workbook, name, self._collections.get(name, {}).items()
                )
            log.error("Unable to save workbook store '%s': %s", self.data_file, exc)
            raise StoreUnavailableError(f"Unable to save data file {self.data_file}: {exc}") from exc


__all__ = [
    "StoreError",
    "DocumentNotFoundError",
    "StoreUnavailableError",
    "TransactionError",
    "Document",
    "Filter",
    "DocumentStore",
    "WriteBatch",
    "Transaction",
    "MemoryDocumentStore",
    "WorkbookDocumentStore",
    "new_id",
]
