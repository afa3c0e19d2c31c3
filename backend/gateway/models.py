import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from bson import ObjectId
from pymongo import ASCENDING, DESCENDING, IndexModel
from pymongo.errors import PyMongoError

from .errors import StoreError
from .schemas import Message

logger = logging.getLogger(__name__)


def serialize(value: Any) -> Any:
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat() + "Z"
    if isinstance(value, dict):
        return {k: serialize(v) for k, v in value.items()}
    if isinstance(value, list):
        return [serialize(v) for v in value]
    return value


class MessageStore:
    """Append-only message log kept in the ``messages`` collection."""

    def __init__(self, db):
        self.collection = db["messages"]

    async def setup_indexes(self):
        indexes = [
            IndexModel(
                [("external_id", ASCENDING)],
                unique=True,
                partialFilterExpression={"external_id": {"$type": "string"}},
            ),
            IndexModel([("timestamp", ASCENDING)]),
            IndexModel([("direction", ASCENDING)]),
        ]
        await self.collection.create_indexes(indexes)

    async def append(self, message: Message) -> str:
        doc = message.to_payload()
        doc["created_at"] = datetime.utcnow()
        try:
            result = await self.collection.insert_one(doc)
        except PyMongoError as e:
            raise StoreError(f"Message insert failed: {e}") from e
        return str(result.inserted_id)

    async def list_recent(self, limit: int = 100) -> List[Dict[str, Any]]:
        """Newest first, by insertion order."""
        cursor = self.collection.find({}).sort("_id", DESCENDING).limit(limit)
        try:
            docs = await cursor.to_list(length=limit)
        except PyMongoError as e:
            raise StoreError(f"Message query failed: {e}") from e
        return [serialize(d) for d in docs]

    async def clear(self) -> int:
        try:
            result = await self.collection.delete_many({})
        except PyMongoError as e:
            raise StoreError(f"Message delete failed: {e}") from e
        return result.deleted_count


class CredentialStore:
    """Single slot holding the serialized auth material for one device identity."""

    def __init__(self, db, client_id: str):
        self.collection = db["sessions"]
        self.client_id = client_id

    async def load(self) -> Optional[Dict[str, Any]]:
        try:
            doc = await self.collection.find_one({"_id": self.client_id})
        except PyMongoError as e:
            raise StoreError(f"Session read failed: {e}") from e
        if not doc:
            return None
        return doc.get("data")

    async def save(self, data: Optional[Dict[str, Any]]):
        if not data:
            logger.warning("Attempted to save empty session")
            return
        try:
            await self.collection.update_one(
                {"_id": self.client_id},
                {"$set": {"data": data, "updated_at": datetime.utcnow()}},
                upsert=True,
            )
        except PyMongoError as e:
            raise StoreError(f"Session write failed: {e}") from e

    async def delete(self) -> bool:
        try:
            result = await self.collection.delete_one({"_id": self.client_id})
        except PyMongoError as e:
            raise StoreError(f"Session delete failed: {e}") from e
        return result.deleted_count > 0
