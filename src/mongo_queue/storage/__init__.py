"""
Storage backends for message records.
"""

from .base import MessageStore, IndexKeys
from .mongodb import MongoDBMessageStore

__all__ = ['MessageStore', 'IndexKeys', 'MongoDBMessageStore']
