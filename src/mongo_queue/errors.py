"""
Exception types raised by the queue.

Store-side failures are not wrapped: pymongo errors reach the caller unchanged.
"""


class QueueError(Exception):
    """Base class for errors raised by mongo_queue."""
    pass


class InvalidArgumentError(QueueError, ValueError):
    """Raised when an argument is rejected before any store interaction."""

    def __init__(self, message: str, argument: str = None):
        super().__init__(message)
        self.argument = argument
