"""
Tests for configuration loading.
"""

from unittest.mock import patch

import pytest
import yaml

from mongo_queue.config import Config
from mongo_queue.errors import InvalidArgumentError


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ('MONGO_QUEUE_CONFIG_PATH', 'MONGO_QUEUE_URL',
                 'MONGO_QUEUE_DATABASE', 'MONGO_QUEUE_COLLECTION'):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / 'config.yaml'
    path.write_text(yaml.dump({
        'mongodb': {'url': 'mongodb://db.example.com:27017', 'database': 'jobs'},
        'queue': {'poll_duration_in_millis': 50},
    }))
    return str(path)


@pytest.mark.unit
class TestConfig:

    def test_defaults_when_file_missing(self, tmp_path):
        config = Config(str(tmp_path / 'missing.yaml'), load_env=False)

        assert config.get_mongo_url() == 'mongodb://localhost:27017'
        assert config.get_database_name() == 'mongo_queue'
        assert config.get_collection_name() == 'messages'
        assert config.get_queue_settings() == {
            'poll_duration_in_millis': 200,
            'max_namespace_length': 127,
        }

    def test_file_values_merge_with_defaults(self, config_file):
        config = Config(config_file, load_env=False)

        assert config.get_mongo_url() == 'mongodb://db.example.com:27017'
        assert config.get_database_name() == 'jobs'
        assert config.get_collection_name() == 'messages'
        assert config.get_queue_settings()['poll_duration_in_millis'] == 50

    def test_config_path_from_environment(self, config_file, monkeypatch):
        monkeypatch.setenv('MONGO_QUEUE_CONFIG_PATH', config_file)

        assert Config(load_env=False).get_database_name() == 'jobs'

    def test_environment_overrides(self, config_file, monkeypatch):
        monkeypatch.setenv('MONGO_QUEUE_URL', 'mongodb://override:27017')
        monkeypatch.setenv('MONGO_QUEUE_COLLECTION', 'tasks')

        config = Config(config_file, load_env=False)

        assert config.get_mongo_url() == 'mongodb://override:27017'
        assert config.get_database_name() == 'jobs'
        assert config.get_collection_name() == 'tasks'

    def test_non_mapping_file(self, tmp_path):
        path = tmp_path / 'config.yaml'
        path.write_text('- just\n- a list\n')

        with pytest.raises(InvalidArgumentError):
            Config(str(path), load_env=False)

    @patch('mongo_queue.config.load_dotenv')
    def test_loads_dotenv(self, mock_load_dotenv, tmp_path):
        Config(str(tmp_path / 'missing.yaml'))
        mock_load_dotenv.assert_called_once()

    @patch('mongo_queue.config.Queue.from_url')
    def test_get_queue(self, mock_from_url, config_file):
        queue = Config(config_file, load_env=False).get_queue()

        assert queue is mock_from_url.return_value
        mock_from_url.assert_called_once_with(
            'mongodb://db.example.com:27017', 'jobs', 'messages',
            poll_duration_in_millis=50,
            max_namespace_length=127,
        )
