"""
MongoDB backed priority message queue.

Messages are claimed atomically with find_one_and_update, ordered by priority
and creation time, and released automatically when a claim expires.

Example:
    from mongo_queue import Queue

    queue = Queue.from_url("mongodb://localhost:27017", "app", "messages")
    queue.ensure_get_index({"type": 1})

    queue.send({"type": "email", "to": "someone@example.com"})
    message = queue.get({"type": "email"}, running_reset_duration=60, wait_duration_in_millis=3000)
    if message is not None:
        queue.ack(message)
"""

from .config import Config
from .errors import QueueError, InvalidArgumentError
from .message import INT32_MAX
from .queue import Queue
from .storage import MessageStore, MongoDBMessageStore

__all__ = [
    'Config',
    'QueueError',
    'InvalidArgumentError',
    'INT32_MAX',
    'Queue',
    'MessageStore',
    'MongoDBMessageStore',
]
