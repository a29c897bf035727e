"""
Index management for the message collection.

Get and count queries are correct without any index; the indexes built here
only keep their query plans cheap. New indexes are skipped when an existing
index already starts with the same key sequence.
"""

import hashlib
import logging
from typing import Iterable, Mapping, Optional, Tuple, Union

from .errors import InvalidArgumentError
from .message import (
    FIELD_RUNNING, FIELD_PRIORITY, FIELD_CREATED, FIELD_EARLIEST_GET,
    FIELD_RESET_TIMESTAMP, payload_path, require_bool, require_key, is_integer,
)
from .storage.base import MessageStore, IndexKeys

logger = logging.getLogger(__name__)

# Longest "<database>.<collection>.$<index name>" the server accepts
DEFAULT_MAX_NAMESPACE_LENGTH = 127

SortSpec = Union[Mapping[str, int], Iterable[Tuple[str, int]]]


def _sort_items(sort: Optional[SortSpec], name: str) -> IndexKeys:
    """Validate a sort specification and return it as ordered (key, direction) pairs."""
    if sort is None:
        return []
    items = sort.items() if isinstance(sort, Mapping) else sort
    try:
        pairs = [(key, direction) for key, direction in items]
    except (TypeError, ValueError):
        raise InvalidArgumentError(f"{name} must be a mapping of key to direction", name)

    for key, direction in pairs:
        require_key(key, name)
        if not is_integer(direction) or direction not in (1, -1):
            raise InvalidArgumentError(
                f"{name} directions must be 1 or -1, got {direction!r} for {key!r}", name
            )
    return pairs


def _payload_keys(pairs: IndexKeys) -> IndexKeys:
    return [(payload_path(key), direction) for key, direction in pairs]


def default_index_name(keys: IndexKeys) -> str:
    """Name an index the way MongoDB does: ``field_direction`` pairs joined by ``_``."""
    return "_".join(f"{field}_{direction}" for field, direction in keys)


def hashed_index_name(keys: IndexKeys) -> str:
    """Short deterministic name for indexes whose default name is too long."""
    digest = hashlib.sha1(default_index_name(keys).encode()).hexdigest()
    return f"mq_{digest[:12]}"


class IndexPolicy:
    """Creates the compound indexes used by get and count."""

    def __init__(self, store: MessageStore,
                 max_namespace_length: int = DEFAULT_MAX_NAMESPACE_LENGTH):
        """
        Initialize the index policy.

        Args:
            store: Message store to index
            max_namespace_length: Longest accepted index namespace
        """
        self.store = store
        self.max_namespace_length = max_namespace_length

    def ensure_get_index(self, before_sort: Optional[SortSpec] = None,
                         after_sort: Optional[SortSpec] = None) -> None:
        """
        Ensure indexes for get queries exist.

        The main index covers running, the before_sort payload fields,
        priority, created, the after_sort payload fields and earliestGet.
        A second index on running and resetTimestamp serves reclaiming of
        expired claims.

        Args:
            before_sort: Payload fields to index ahead of the sort fields
            after_sort: Payload fields to index after the sort fields

        Raises:
            InvalidArgumentError: On bad keys, directions or index names
        """
        before = _sort_items(before_sort, "before_sort")
        after = _sort_items(after_sort, "after_sort")

        keys = [(FIELD_RUNNING, 1)]
        keys.extend(_payload_keys(before))
        keys.extend([(FIELD_PRIORITY, 1), (FIELD_CREATED, 1)])
        keys.extend(_payload_keys(after))
        keys.append((FIELD_EARLIEST_GET, 1))

        self._ensure_index(keys)
        self._ensure_index([(FIELD_RUNNING, 1), (FIELD_RESET_TIMESTAMP, 1)])

    def ensure_count_index(self, index: SortSpec, include_running: bool) -> None:
        """
        Ensure an index for count queries exists.

        Args:
            index: Payload fields to index
            include_running: Whether to lead the index with the running flag

        Raises:
            InvalidArgumentError: On bad keys, directions, flag or index names
        """
        pairs = _sort_items(index, "index")
        require_bool(include_running, "include_running")

        keys = [(FIELD_RUNNING, 1)] if include_running else []
        keys.extend(_payload_keys(pairs))
        self._ensure_index(keys)

    def _ensure_index(self, keys: IndexKeys) -> None:
        """Create an index over keys unless an existing index starts with them."""
        if not keys:
            return

        name = self._index_name(keys)

        for existing in self.store.index_keys():
            if [tuple(item) for item in existing[:len(keys)]] == keys:
                logger.debug(f"Index {default_index_name(keys)} already served by {default_index_name(existing)}")
                return

        self.store.create_index(keys, name)
        logger.info(f"Created index {name} on {self.store.namespace}")

    def _index_name(self, keys: IndexKeys) -> str:
        """Pick an index name that fits within the namespace length limit."""
        name = default_index_name(keys)
        if self._fits(name):
            return name

        short_name = hashed_index_name(keys)
        if not self._fits(short_name):
            raise InvalidArgumentError(
                f"Index namespace for {self.store.namespace} exceeds "
                f"{self.max_namespace_length} characters",
                "collection",
            )
        logger.warning(f"Index name {name} too long for {self.store.namespace}, using {short_name}")
        return short_name

    def _fits(self, name: str) -> bool:
        return len(f"{self.store.namespace}.${name}") <= self.max_namespace_length
