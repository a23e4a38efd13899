"""
Document store adapters.

Every collection holds plain dict documents keyed by an opaque string id.
Queries are limited to equality and ``$in`` membership filters, with no
transactions across collections. ``MongoDocumentStore`` talks to MongoDB
through pymongo's asyncio client; ``MemoryDocumentStore`` keeps everything in
process and backs the tests and local runs without ``DATABASE_URL``.
"""
import copy
import logging
from typing import Dict, List, Optional

from bson import ObjectId
from bson.errors import InvalidId
from pymongo import AsyncMongoClient
from pymongo.errors import PyMongoError

from errors import NetworkError

logger = logging.getLogger(__name__)


def serialize_doc(doc):
    if not doc:
        return doc
    doc = dict(doc)
    _id = doc.pop("_id", None)
    if _id is not None:
        doc["id"] = str(_id)
    return doc


def _matches(doc: dict, filt: dict) -> bool:
    for key, expected in filt.items():
        value = doc.get(key)
        if isinstance(expected, dict) and "$in" in expected:
            if value not in expected["$in"]:
                return False
        elif value != expected:
            return False
    return True


class DocumentStore:
    """Contract shared by the store adapters."""

    name = "store"

    async def create_document(self, collection: str, data: dict) -> str:
        raise NotImplementedError

    async def get_document(self, collection: str, doc_id: str) -> Optional[dict]:
        raise NotImplementedError

    async def get_documents(self, collection: str, filt: Optional[dict] = None, limit: Optional[int] = None) -> List[dict]:
        raise NotImplementedError

    async def update_document(self, collection: str, doc_id: str, changes: dict) -> bool:
        raise NotImplementedError

    async def delete_document(self, collection: str, doc_id: str) -> bool:
        raise NotImplementedError

    async def count_documents(self, collection: str, filt: Optional[dict] = None) -> int:
        return len(await self.get_documents(collection, filt))

    async def list_collection_names(self) -> List[str]:
        raise NotImplementedError

    async def close(self) -> None:
        return None


class MemoryDocumentStore(DocumentStore):
    name = "memory"

    def __init__(self):
        self._collections: Dict[str, Dict[str, dict]] = {}

    def _collection(self, collection: str) -> Dict[str, dict]:
        return self._collections.setdefault(collection, {})

    async def create_document(self, collection: str, data: dict) -> str:
        doc_id = str(ObjectId())
        self._collection(collection)[doc_id] = copy.deepcopy(data)
        return doc_id

    async def get_document(self, collection: str, doc_id: str) -> Optional[dict]:
        doc = self._collection(collection).get(doc_id)
        if doc is None:
            return None
        return {"id": doc_id, **copy.deepcopy(doc)}

    async def get_documents(self, collection: str, filt: Optional[dict] = None, limit: Optional[int] = None) -> List[dict]:
        docs = [
            {"id": doc_id, **copy.deepcopy(doc)}
            for doc_id, doc in self._collection(collection).items()
            if _matches(doc, filt or {})
        ]
        return docs[:limit] if limit else docs

    async def update_document(self, collection: str, doc_id: str, changes: dict) -> bool:
        doc = self._collection(collection).get(doc_id)
        if doc is None:
            return False
        doc.update(copy.deepcopy(changes))
        return True

    async def delete_document(self, collection: str, doc_id: str) -> bool:
        return self._collection(collection).pop(doc_id, None) is not None

    async def list_collection_names(self) -> List[str]:
        return [name for name, docs in self._collections.items() if docs]


class MongoDocumentStore(DocumentStore):
    name = "mongodb"

    def __init__(self, database_url: str, database_name: str, client: Optional[AsyncMongoClient] = None):
        self.client = client or AsyncMongoClient(database_url, tz_aware=True)
        self.db = self.client[database_name]

    @staticmethod
    def _oid(doc_id: str) -> Optional[ObjectId]:
        try:
            return ObjectId(doc_id)
        except (InvalidId, TypeError):
            return None

    async def create_document(self, collection: str, data: dict) -> str:
        try:
            result = await self.db[collection].insert_one(dict(data))
        except PyMongoError as e:
            logger.error("insert into %s failed: %s", collection, e)
            raise NetworkError(f"Could not write to {collection}: {e}") from e
        return str(result.inserted_id)

    async def get_document(self, collection: str, doc_id: str) -> Optional[dict]:
        oid = self._oid(doc_id)
        if oid is None:
            return None
        try:
            doc = await self.db[collection].find_one({"_id": oid})
        except PyMongoError as e:
            logger.error("read from %s failed: %s", collection, e)
            raise NetworkError(f"Could not read {collection}: {e}") from e
        return serialize_doc(doc)

    async def get_documents(self, collection: str, filt: Optional[dict] = None, limit: Optional[int] = None) -> List[dict]:
        try:
            cursor = self.db[collection].find(filt or {})
            if limit:
                cursor = cursor.limit(limit)
            return [serialize_doc(d) async for d in cursor]
        except PyMongoError as e:
            logger.error("query on %s failed: %s", collection, e)
            raise NetworkError(f"Could not read {collection}: {e}") from e

    async def update_document(self, collection: str, doc_id: str, changes: dict) -> bool:
        oid = self._oid(doc_id)
        if oid is None:
            return False
        try:
            res = await self.db[collection].update_one({"_id": oid}, {"$set": dict(changes)})
        except PyMongoError as e:
            logger.error("update on %s failed: %s", collection, e)
            raise NetworkError(f"Could not write to {collection}: {e}") from e
        return res.matched_count > 0

    async def delete_document(self, collection: str, doc_id: str) -> bool:
        oid = self._oid(doc_id)
        if oid is None:
            return False
        try:
            res = await self.db[collection].delete_one({"_id": oid})
        except PyMongoError as e:
            logger.error("delete on %s failed: %s", collection, e)
            raise NetworkError(f"Could not write to {collection}: {e}") from e
        return res.deleted_count > 0

    async def count_documents(self, collection: str, filt: Optional[dict] = None) -> int:
        try:
            return await self.db[collection].count_documents(filt or {})
        except PyMongoError as e:
            raise NetworkError(f"Could not read {collection}: {e}") from e

    async def list_collection_names(self) -> List[str]:
        try:
            return await self.db.list_collection_names()
        except PyMongoError as e:
            raise NetworkError(f"Could not list collections: {e}") from e

    async def close(self) -> None:
        await self.client.close()
