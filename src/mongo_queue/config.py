"""
Configuration loading for mongo_queue.

Settings come from a YAML file, with connection settings overridable from the
environment (a ``.env`` file is loaded first):

    mongodb:
      url: mongodb://localhost:27017
      database: queues
      collection: messages
    queue:
      poll_duration_in_millis: 200
      max_namespace_length: 127
"""

import copy
import logging
import os
from pathlib import Path
from typing import Dict, Any, Optional

import yaml
from dotenv import load_dotenv

from .errors import InvalidArgumentError
from .indexes import DEFAULT_MAX_NAMESPACE_LENGTH
from .queue import Queue, DEFAULT_POLL_DURATION_MILLIS

logger = logging.getLogger(__name__)

CONFIG_PATH_ENV = "MONGO_QUEUE_CONFIG_PATH"
DEFAULT_CONFIG_PATH = "./config.yaml"

DEFAULT_CONFIG = {
    'mongodb': {
        'url': 'mongodb://localhost:27017',
        'database': 'mongo_queue',
        'collection': 'messages',
    },
    'queue': {
        'poll_duration_in_millis': DEFAULT_POLL_DURATION_MILLIS,
        'max_namespace_length': DEFAULT_MAX_NAMESPACE_LENGTH,
    },
}

# Environment variable -> (section, key)
ENV_OVERRIDES = {
    'MONGO_QUEUE_URL': ('mongodb', 'url'),
    'MONGO_QUEUE_DATABASE': ('mongodb', 'database'),
    'MONGO_QUEUE_COLLECTION': ('mongodb', 'collection'),
}


class Config:
    """Queue configuration backed by a YAML file and environment variables."""

    def __init__(self, config_path: Optional[str] = None, load_env: bool = True):
        """
        Load configuration.

        Args:
            config_path: YAML file path (defaults to $MONGO_QUEUE_CONFIG_PATH
                or ./config.yaml); a missing file leaves the defaults in place
            load_env: Whether to read a .env file before applying overrides
        """
        if load_env:
            load_dotenv()

        self.config_path = config_path or os.environ.get(CONFIG_PATH_ENV, DEFAULT_CONFIG_PATH)
        self.config: Dict[str, Any] = copy.deepcopy(DEFAULT_CONFIG)

        path = Path(self.config_path)
        if path.exists():
            with open(path, 'r') as f:
                file_config = yaml.safe_load(f) or {}
            if not isinstance(file_config, dict):
                raise InvalidArgumentError(f"Configuration file {path} must contain a mapping", "config_path")
            self._merge(file_config)
            logger.debug(f"Loaded configuration from {path}")
        else:
            logger.debug(f"Configuration file {path} not found, using defaults")

        for env_name, (section, key) in ENV_OVERRIDES.items():
            value = os.environ.get(env_name)
            if value:
                self.config[section][key] = value

    def _merge(self, file_config: Dict[str, Any]) -> None:
        for section, values in file_config.items():
            if isinstance(values, dict) and isinstance(self.config.get(section), dict):
                self.config[section].update(values)
            else:
                self.config[section] = values

    def get_mongo_url(self) -> str:
        return self.config['mongodb']['url']

    def get_database_name(self) -> str:
        return self.config['mongodb']['database']

    def get_collection_name(self) -> str:
        return self.config['mongodb']['collection']

    def get_queue_settings(self) -> Dict[str, Any]:
        return dict(self.config['queue'])

    def get_queue(self) -> Queue:
        """
        Create a queue from this configuration.

        Returns:
            Queue connected to the configured collection
        """
        settings = self.get_queue_settings()
        return Queue.from_url(
            self.get_mongo_url(),
            self.get_database_name(),
            self.get_collection_name(),
            poll_duration_in_millis=int(settings['poll_duration_in_millis']),
            max_namespace_length=int(settings['max_namespace_length']),
        )
