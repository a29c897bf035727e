"""
Priority message queue backed by a MongoDB collection.

Every state change is a single-document atomic operation:

- send inserts a record,
- get claims the best eligible record with find_one_and_update,
- ack deletes the record,
- ack_send and requeue rewrite and release the record in one update.

Claims expire after their reset duration. Any later get whose clock has
passed the deadline may reclaim the record, so delivery is at-least-once.
"""

import logging
import threading
import time
from typing import Dict, Any, Callable, Mapping, Optional, Union, TYPE_CHECKING

from .errors import InvalidArgumentError
from .indexes import IndexPolicy, SortSpec, DEFAULT_MAX_NAMESPACE_LENGTH
from .message import (
    FIELD_ID, FIELD_PAYLOAD, FIELD_RUNNING, FIELD_PRIORITY, FIELD_CREATED,
    FIELD_EARLIEST_GET, FIELD_RESET_TIMESTAMP, HANDLE_ID, NEVER,
    new_record, to_handle, handle_payload, payload_path,
    seconds_to_datetime, timestamp_to_datetime,
    require_integer, require_bool, require_priority, require_mapping,
    require_query, require_running_filter,
)
from .storage.base import MessageStore
from .storage.mongodb import MongoDBMessageStore

if TYPE_CHECKING:
    from pymongo.collection import Collection

logger = logging.getLogger(__name__)

DEFAULT_POLL_DURATION_MILLIS = 200

# Claim order: lowest priority first, oldest first among equals
CLAIM_SORT = [(FIELD_PRIORITY, 1), (FIELD_CREATED, 1)]


class Queue:
    """Priority queue whose state lives entirely in the backing store."""

    def __init__(self, store: Union[MessageStore, "Collection"],
                 clock: Callable[[], float] = time.time,
                 poll_duration_in_millis: int = DEFAULT_POLL_DURATION_MILLIS,
                 max_namespace_length: int = DEFAULT_MAX_NAMESPACE_LENGTH):
        """
        Initialize the queue.

        Args:
            store: Message store, or a pymongo collection to wrap in one
            clock: Wall clock returning epoch seconds
            poll_duration_in_millis: Sleep between claim attempts when get is
                called with a negative poll duration
            max_namespace_length: Longest index namespace the store accepts
        """
        if not isinstance(store, MessageStore):
            store = MongoDBMessageStore(store)
        self.store = store
        self.clock = clock
        self.default_poll_duration_in_millis = require_integer(
            poll_duration_in_millis, "poll_duration_in_millis"
        )
        self.indexes = IndexPolicy(store, max_namespace_length)

    @classmethod
    def from_url(cls, url: str, database: str, collection: str, **kwargs) -> "Queue":
        """
        Create a queue on the named MongoDB collection.

        Args:
            url: MongoDB connection string
            database: Database name
            collection: Collection name
            **kwargs: Passed to the Queue constructor

        Returns:
            Queue instance
        """
        return cls(MongoDBMessageStore.from_url(url, database, collection), **kwargs)

    # ========================================
    # INDEXES
    # ========================================

    def ensure_get_index(self, before_sort: Optional[SortSpec] = None,
                         after_sort: Optional[SortSpec] = None) -> None:
        """
        Ensure an index for get queries using the given payload fields.

        Args:
            before_sort: Payload fields queried by equality, indexed before priority
            after_sort: Payload fields queried by range, indexed after created
        """
        self.indexes.ensure_get_index(before_sort, after_sort)

    def ensure_count_index(self, index: SortSpec, include_running: bool) -> None:
        """
        Ensure an index for count queries using the given payload fields.

        Args:
            index: Payload fields to index
            include_running: Whether counts will filter on the running flag
        """
        self.indexes.ensure_count_index(index, include_running)

    # ========================================
    # QUEUE OPERATIONS
    # ========================================

    def send(self, payload: Mapping[str, Any], earliest_get: int = 0,
             priority: Optional[float] = None) -> Any:
        """
        Add a message to the queue.

        Args:
            payload: Message document
            earliest_get: Epoch seconds before which get will not return the
                message, clamped into [0, INT32_MAX]
            priority: Lower values dequeue first; defaults to the current
                time so messages sent without a priority come out in order

        Returns:
            Id of the new message

        Raises:
            InvalidArgumentError: On a bad payload, earliest_get or priority
        """
        require_mapping(payload, "payload")
        require_integer(earliest_get, "earliest_get")
        now = self.clock()
        priority = require_priority(now if priority is None else priority)

        message_id = self.store.insert(new_record(payload, earliest_get, priority, now))
        logger.debug(f"Sent message {message_id} with priority {priority}")
        return message_id

    def get(self, query: Mapping[str, Any], running_reset_duration: int,
            wait_duration_in_millis: int = 0,
            poll_duration_in_millis: int = DEFAULT_POLL_DURATION_MILLIS,
            cancel_event: Optional[threading.Event] = None) -> Optional[Dict[str, Any]]:
        """
        Claim the highest priority eligible message matching query.

        Args:
            query: Conditions on payload fields, e.g. ``{"type": "email"}`` or
                ``{"retry.count": {"$lt": 3}}``
            running_reset_duration: Seconds the claim is held before the
                message becomes claimable again
            wait_duration_in_millis: How long to keep polling for a message
            poll_duration_in_millis: Pause between claim attempts; negative
                selects the queue default
            cancel_event: Stops polling when set

        Returns:
            Message handle ``{"id": ..., **payload}``, or None if no message
            could be claimed in time

        Raises:
            InvalidArgumentError: On a bad query or duration
        """
        require_query(query)
        require_integer(running_reset_duration, "running_reset_duration")
        require_integer(wait_duration_in_millis, "wait_duration_in_millis")
        require_integer(poll_duration_in_millis, "poll_duration_in_millis")
        if wait_duration_in_millis < 0:
            raise InvalidArgumentError(
                "wait_duration_in_millis must not be negative", "wait_duration_in_millis"
            )
        if poll_duration_in_millis < 0:
            poll_duration_in_millis = self.default_poll_duration_in_millis

        payload_query = {payload_path(key): value for key, value in query.items()}
        poll_seconds = poll_duration_in_millis / 1000.0
        deadline = time.monotonic() + wait_duration_in_millis / 1000.0

        while True:
            message = self._claim(payload_query, running_reset_duration)
            if message is not None:
                return message

            if time.monotonic() >= deadline:
                return None

            if cancel_event is None:
                time.sleep(poll_seconds)
            elif cancel_event.wait(poll_seconds):
                logger.debug("Get cancelled while polling")
                return None

    def _claim(self, payload_query: Dict[str, Any],
               running_reset_duration: int) -> Optional[Dict[str, Any]]:
        """Make one atomic claim attempt."""
        now = self.clock()
        now_datetime = timestamp_to_datetime(now)

        claim_query = dict(payload_query)
        claim_query[FIELD_EARLIEST_GET] = {"$lte": now_datetime}
        claim_query["$or"] = [
            {FIELD_RUNNING: False},
            {FIELD_RESET_TIMESTAMP: {"$lte": now_datetime}},
        ]
        update = {
            "$set": {
                FIELD_RUNNING: True,
                FIELD_RESET_TIMESTAMP: seconds_to_datetime(int(now) + running_reset_duration),
            }
        }

        record = self.store.claim_one(claim_query, update, CLAIM_SORT)
        if record is None:
            return None

        logger.debug(f"Claimed message {record[FIELD_ID]} for {running_reset_duration}s")
        return to_handle(record)

    def count(self, query: Mapping[str, Any], running: Optional[bool] = None) -> int:
        """
        Count messages matching query.

        Not atomic with respect to concurrent claims; use for monitoring only.

        Args:
            query: Conditions on payload fields
            running: True counts claimed messages, False unclaimed ones, None both

        Returns:
            Number of matching messages
        """
        require_query(query)
        require_running_filter(running)

        count_query = {payload_path(key): value for key, value in query.items()}
        if running is not None:
            count_query[FIELD_RUNNING] = running

        return self.store.count(count_query)

    def ack(self, message: Mapping[str, Any]) -> None:
        """
        Acknowledge a message, removing it from the queue.

        Acknowledging a message that is already gone is a no-op.

        Args:
            message: Handle returned by get
        """
        message_id = self._message_id(message)
        self.store.delete_one(message_id)
        logger.debug(f"Acked message {message_id}")

    def ack_send(self, message: Mapping[str, Any], payload: Mapping[str, Any],
                 earliest_get: int = 0, priority: float = 0.0,
                 new_timestamp: bool = True) -> None:
        """
        Atomically acknowledge a message and send a replacement.

        The record keeps its id and is rewritten in a single update, so there
        is no point at which the message is neither acked nor queued. If the
        record is gone it is recreated.

        Args:
            message: Handle returned by get
            payload: Payload of the replacement message
            earliest_get: Epoch seconds before which get will not return the
                message, clamped into [0, INT32_MAX]
            priority: Lower values dequeue first
            new_timestamp: Reset the created time used to order equal priorities

        Raises:
            InvalidArgumentError: On a bad handle or argument
        """
        message_id = self._message_id(message)
        require_mapping(payload, "payload")
        require_integer(earliest_get, "earliest_get")
        priority = require_priority(priority)
        require_bool(new_timestamp, "new_timestamp")

        now_datetime = timestamp_to_datetime(self.clock())
        update = {
            "$set": {
                FIELD_PAYLOAD: dict(payload),
                FIELD_RUNNING: False,
                FIELD_RESET_TIMESTAMP: NEVER,
                FIELD_EARLIEST_GET: seconds_to_datetime(earliest_get),
                FIELD_PRIORITY: priority,
            }
        }
        if new_timestamp:
            update["$set"][FIELD_CREATED] = now_datetime
        else:
            update["$setOnInsert"] = {FIELD_CREATED: now_datetime}

        self.store.update_one(message_id, update, upsert=True)
        logger.debug(f"Ack-sent message {message_id} with priority {priority}")

    def requeue(self, message: Mapping[str, Any], earliest_get: int = 0,
                priority: float = 0.0, new_timestamp: bool = True) -> None:
        """
        Release a message back to the queue with its payload unchanged.

        Args:
            message: Handle returned by get
            earliest_get: Epoch seconds before which get will not return the
                message, clamped into [0, INT32_MAX]
            priority: Lower values dequeue first
            new_timestamp: Reset the created time used to order equal priorities
        """
        self._message_id(message)
        self.ack_send(message, handle_payload(message), earliest_get, priority, new_timestamp)

    def _message_id(self, message: Mapping[str, Any]) -> Any:
        """Extract and validate the id of a message handle."""
        require_mapping(message, "message")
        message_id = message.get(HANDLE_ID)
        if not self.store.is_valid_id(message_id):
            raise InvalidArgumentError(
                f"message id must be a store id, got {type(message_id).__name__}", "message"
            )
        return message_id
