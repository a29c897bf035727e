"""
MongoDB implementation of the message store.

Claims use ``find_one_and_update`` so matching and updating a record is a
single server-side operation.
"""

import logging
from typing import Dict, Any, List, Optional, TYPE_CHECKING

from bson import ObjectId
from pymongo import MongoClient, ReturnDocument

from ..errors import InvalidArgumentError
from ..message import FIELD_ID, FIELD_PAYLOAD
from .base import MessageStore, IndexKeys

if TYPE_CHECKING:
    from pymongo.collection import Collection

logger = logging.getLogger(__name__)


class MongoDBMessageStore(MessageStore):
    """Message store backed by a single MongoDB collection."""

    def __init__(self, collection: "Collection"):
        """
        Initialize the store.

        Args:
            collection: pymongo collection holding the message records
        """
        self.collection = collection
        self._client = None

    @classmethod
    def from_url(cls, url: str, database: str, collection: str,
                 **client_options) -> "MongoDBMessageStore":
        """
        Connect to MongoDB and open the message collection.

        Args:
            url: MongoDB connection string
            database: Database name
            collection: Collection name
            **client_options: Extra keyword arguments for MongoClient

        Returns:
            Store owning its client; call close() when done
        """
        for name, value in (("url", url), ("database", database), ("collection", collection)):
            if not isinstance(value, str) or not value:
                raise InvalidArgumentError(f"{name} must be a non-empty string", name)

        client = MongoClient(url, **client_options)
        store = cls(client[database][collection])
        store._client = client
        logger.info(f"Opened MongoDB message collection {store.namespace}")
        return store

    @property
    def namespace(self) -> str:
        return self.collection.full_name

    def insert(self, record: Dict[str, Any]) -> ObjectId:
        result = self.collection.insert_one(record)
        return result.inserted_id

    def claim_one(self, query: Dict[str, Any], update: Dict[str, Any],
                  sort: IndexKeys) -> Optional[Dict[str, Any]]:
        return self.collection.find_one_and_update(
            query,
            update,
            projection={FIELD_PAYLOAD: 1},
            sort=sort,
            return_document=ReturnDocument.BEFORE,
        )

    def update_one(self, message_id: ObjectId, update: Dict[str, Any], upsert: bool = False) -> None:
        self.collection.update_one({FIELD_ID: message_id}, update, upsert=upsert)

    def delete_one(self, message_id: ObjectId) -> None:
        result = self.collection.delete_one({FIELD_ID: message_id})
        if result.deleted_count == 0:
            logger.debug(f"Message {message_id} was already removed")

    def count(self, query: Dict[str, Any]) -> int:
        return self.collection.count_documents(query)

    def index_keys(self) -> List[IndexKeys]:
        indexes = []
        for info in self.collection.list_indexes():
            indexes.append([(field, direction) for field, direction in info["key"].items()])
        return indexes

    def create_index(self, keys: IndexKeys, name: str) -> None:
        self.collection.create_index(keys, name=name, background=True)

    def is_valid_id(self, value: Any) -> bool:
        return isinstance(value, ObjectId)

    def close(self) -> None:
        """Close the client if this store opened it."""
        if self._client is not None:
            self._client.close()
            self._client = None
