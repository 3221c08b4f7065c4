"""
Document store gateway.

The shop core talks to storage only through DocumentGateway: filtered reads
with pagination, sorting and relation expansion, inserts, and atomic
single-document updates. MongoGateway implements it on top of an async
pymongo database.
"""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from bson import ObjectId
from bson.errors import InvalidDocument
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError, OperationFailure, PyMongoError

from errors import (
    ERROR_DATABASE_UNAVAILABLE,
    ERROR_INVALID_ID,
    ERROR_INVALID_PATTERN,
    ERROR_INVALID_VALUE,
    ERROR_STORAGE,
    InvalidArgument,
    StorageFailure,
    WriteConflict,
)
from log import get_logger

logger = get_logger(__name__)

SortSpec = Sequence[Tuple[str, int]]

# Largest integer BSON can store
MAX_INT64 = 2**63 - 1

# Server error code for a $regex it cannot compile
INVALID_REGEX_CODE = 51091


def to_object_id(value: Any) -> ObjectId:
    """Coerce a client supplied id to an ObjectId or raise InvalidArgument."""
    if isinstance(value, ObjectId):
        return value
    if not isinstance(value, str) or not ObjectId.is_valid(value):
        raise InvalidArgument(f"{ERROR_INVALID_ID}: {value!r}")
    return ObjectId(value)


@dataclass(frozen=True)
class Expand:
    """
    A relation to resolve after a read.

    `path` is a dotted path to an id or a list of ids (lists along the way
    are traversed, e.g. "products.productId"). The referenced documents are
    loaded from `collection`, get their own `nested` expansions, lose the
    `exclude`d fields, and replace the ids in place. Ids without a target are
    dropped from lists and become None when stored as a single value.
    """

    path: str
    collection: str
    nested: Tuple["Expand", ...] = ()
    exclude: Tuple[str, ...] = ()


def _collect_ids(node: Any, parts: List[str]) -> Iterable[Any]:
    if isinstance(node, list):
        for item in node:
            yield from _collect_ids(item, parts)
        return
    if not isinstance(node, dict) or parts[0] not in node:
        return
    value = node[parts[0]]
    if len(parts) > 1:
        yield from _collect_ids(value, parts[1:])
    elif isinstance(value, list):
        yield from (v for v in value if v is not None)
    elif value is not None:
        yield value


def _replace_ids(node: Any, parts: List[str], targets: Dict[Any, dict]) -> None:
    if isinstance(node, list):
        for item in node:
            _replace_ids(item, parts, targets)
        return
    if not isinstance(node, dict) or parts[0] not in node:
        return
    key = parts[0]
    if len(parts) > 1:
        _replace_ids(node[key], parts[1:], targets)
    elif isinstance(node[key], list):
        node[key] = [targets[v] for v in node[key] if v in targets]
    else:
        node[key] = targets.get(node[key])


class DocumentGateway(ABC):
    @abstractmethod
    async def find_many(
        self,
        collection: str,
        predicate: Dict[str, Any],
        *,
        limit: int = 0,
        offset: int = 0,
        sort: Optional[SortSpec] = None,
        expand: Sequence[Expand] = (),
    ) -> List[dict]:
        ...

    @abstractmethod
    async def find_one(
        self,
        collection: str,
        predicate: Dict[str, Any],
        *,
        expand: Sequence[Expand] = (),
    ) -> Optional[dict]:
        ...

    @abstractmethod
    async def insert(self, collection: str, document: Dict[str, Any]) -> dict:
        ...

    @abstractmethod
    async def atomic_update(
        self,
        collection: str,
        predicate: Dict[str, Any],
        mutation: Dict[str, Any],
        *,
        upsert: bool = False,
        return_updated: bool = True,
    ) -> Optional[dict]:
        ...


class MongoGateway(DocumentGateway):
    def __init__(self, database):
        self.db = database

    def _collection(self, name: str):
        if self.db is None:
            raise StorageFailure(ERROR_DATABASE_UNAVAILABLE)
        return self.db[name]

    async def find_many(self, collection, predicate, *, limit=0, offset=0, sort=None, expand=()):
        try:
            cursor = self._collection(collection).find(predicate)
            if sort:
                cursor = cursor.sort(list(sort))
            cursor = cursor.skip(offset).limit(limit)
            documents = await cursor.to_list(length=None)
            await self._expand(documents, expand)
        except (OverflowError, InvalidDocument) as e:
            raise self._rejected("find", collection, e) from e
        except OperationFailure as e:
            raise self._query_failure("find", collection, e) from e
        except PyMongoError as e:
            raise self._failure(StorageFailure, "find", collection, e) from e
        return documents

    async def find_one(self, collection, predicate, *, expand=()):
        try:
            document = await self._collection(collection).find_one(predicate)
            if document is not None:
                await self._expand([document], expand)
        except (OverflowError, InvalidDocument) as e:
            raise self._rejected("find_one", collection, e) from e
        except OperationFailure as e:
            raise self._query_failure("find_one", collection, e) from e
        except PyMongoError as e:
            raise self._failure(StorageFailure, "find_one", collection, e) from e
        return document

    async def insert(self, collection, document):
        document = dict(document)
        try:
            result = await self._collection(collection).insert_one(document)
        except (OverflowError, InvalidDocument) as e:
            raise self._rejected("insert", collection, e) from e
        except DuplicateKeyError as e:
            raise self._failure(WriteConflict, "insert", collection, e) from e
        except PyMongoError as e:
            raise self._failure(StorageFailure, "insert", collection, e) from e
        document["_id"] = result.inserted_id
        return document

    async def atomic_update(
        self, collection, predicate, mutation, *, upsert=False, return_updated=True
    ):
        return_document = ReturnDocument.AFTER if return_updated else ReturnDocument.BEFORE
        try:
            return await self._collection(collection).find_one_and_update(
                predicate, mutation, upsert=upsert, return_document=return_document
            )
        except (OverflowError, InvalidDocument) as e:
            raise self._rejected("update", collection, e) from e
        except DuplicateKeyError as e:
            raise self._failure(WriteConflict, "update", collection, e) from e
        except PyMongoError as e:
            raise self._failure(StorageFailure, "update", collection, e) from e

    async def _expand(self, documents: List[dict], expand: Sequence[Expand]) -> None:
        # Each relation touches its own path, so they can resolve concurrently
        if not documents or not expand:
            return
        tasks = [asyncio.ensure_future(self._expand_one(documents, spec)) for spec in expand]
        try:
            await asyncio.gather(*tasks)
        except BaseException:
            # No sibling may keep writing into `documents` once the read failed
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

    async def _expand_one(self, documents: List[dict], spec: Expand) -> None:
        parts = spec.path.split(".")
        ids = list(dict.fromkeys(_collect_ids(documents, parts)))
        targets: Dict[Any, dict] = {}
        if ids:
            projection = {field: 0 for field in spec.exclude} or None
            cursor = self._collection(spec.collection).find({"_id": {"$in": ids}}, projection)
            found = await cursor.to_list(length=None)
            await self._expand(found, spec.nested)
            targets = {doc["_id"]: doc for doc in found}
        _replace_ids(documents, parts, targets)

    @staticmethod
    def _failure(kind, operation: str, collection: str, error: Exception) -> StorageFailure:
        logger.error("Mongo %s on %s failed: %s", operation, collection, error, exc_info=True)
        return kind(f"{ERROR_STORAGE}: {operation} on {collection}")

    @staticmethod
    def _rejected(operation: str, collection: str, error: Exception) -> InvalidArgument:
        # The driver could not encode the command, e.g. an int wider than 64 bits
        logger.warning("Mongo %s on %s rejected: %s", operation, collection, error)
        return InvalidArgument(ERROR_INVALID_VALUE)

    @classmethod
    def _query_failure(cls, operation: str, collection: str, error: OperationFailure):
        if error.code == INVALID_REGEX_CODE:
            logger.warning("Mongo %s on %s rejected pattern: %s", operation, collection, error)
            return InvalidArgument(ERROR_INVALID_PATTERN)
        return cls._failure(StorageFailure, operation, collection, error)
