"""
MessageStore Abstract Base Class

The queue protocol talks to its backing store only through this interface.
Queries and updates use the MongoDB query language (equality, comparison
operators, ``$or`` and dotted sub-field addressing); any store offering an
atomic single-document "match, update, return prior" primitive can implement
it.
"""

from abc import ABC, abstractmethod
from typing import Dict, Any, List, Optional, Tuple

# Ordered index specification: [(field, direction), ...]
IndexKeys = List[Tuple[str, int]]


class MessageStore(ABC):
    """Abstract base class for message record stores."""

    @property
    @abstractmethod
    def namespace(self) -> str:
        """
        Fully qualified collection name (``<database>.<collection>``).

        Used to check index namespace lengths before creating indexes.
        """
        pass

    @abstractmethod
    def insert(self, record: Dict[str, Any]) -> Any:
        """
        Insert a new record.

        Args:
            record: Record document without an id

        Returns:
            Id assigned to the record
        """
        pass

    @abstractmethod
    def claim_one(self, query: Dict[str, Any], update: Dict[str, Any],
                  sort: IndexKeys) -> Optional[Dict[str, Any]]:
        """
        Atomically update the first record matching query in sort order.

        Args:
            query: Match predicate
            update: Update document applied to the matched record
            sort: Order in which candidate records are considered

        Returns:
            The matched record as it was before the update (at least ``_id``
            and ``payload``), or None when nothing matched
        """
        pass

    @abstractmethod
    def update_one(self, message_id: Any, update: Dict[str, Any], upsert: bool = False) -> None:
        """
        Apply update to the record with the given id in one atomic operation.

        Args:
            message_id: Record id
            update: Update document
            upsert: Create the record under message_id if it does not exist
        """
        pass

    @abstractmethod
    def delete_one(self, message_id: Any) -> None:
        """Delete the record with the given id. Missing records are ignored."""
        pass

    @abstractmethod
    def count(self, query: Dict[str, Any]) -> int:
        """Count records matching query."""
        pass

    @abstractmethod
    def index_keys(self) -> List[IndexKeys]:
        """Return the ordered key specification of every existing index."""
        pass

    @abstractmethod
    def create_index(self, keys: IndexKeys, name: str) -> None:
        """Create an index over keys under the given name."""
        pass

    @abstractmethod
    def is_valid_id(self, value: Any) -> bool:
        """Whether value has the type of ids this store assigns."""
        pass
