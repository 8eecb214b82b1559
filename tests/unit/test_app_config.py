"""Unit tests for the app_config module."""
import os
from unittest.mock import patch, mock_open, MagicMock

import yaml

from translation_manager.app_config import AppConfig, _load_yaml_config, load_app_config


def load_with_yaml(mock_config, environ=None, clear=True):
    """Run ``load_app_config`` against an in-memory config.yaml."""
    with patch("builtins.open", mock_open(read_data=yaml.dump(mock_config))):
        with patch("os.path.exists", return_value=True):
            with patch("os.access", return_value=True):
                with patch("translation_manager.app_config.load_dotenv"):
                    with patch("translation_manager.app_config.setup_logger") as mock_logger:
                        mock_logger.return_value = MagicMock()
                        with patch.dict(os.environ, environ or {}, clear=clear):
                            return load_app_config()


class TestAppConfig:
    """Test cases for the AppConfig dataclass."""

    def test_app_config_creation(self):
        """Test that AppConfig can be created with required fields."""
        config = AppConfig(
            project_root="/test/root",
            store_file_path="/test/root/data/store.json",
            model_name="gpt-4o-mini",
            analysis_model_name="gpt-4o",
            max_completion_tokens=500,
            request_timeout=30.0,
            dry_run=False,
            max_concurrent_api_calls=8,
            requests_per_minute=600,
            language_names={"tr": "Turkish"},
            server_host="127.0.0.1",
            server_port=8000,
            openai_client=None
        )

        assert config.project_root == "/test/root"
        assert config.model_name == "gpt-4o-mini"
        assert config.dry_run is False
        assert config.language_names == {"tr": "Turkish"}


class TestLoadAppConfig:
    """Test cases for the load_app_config function."""

    def test_load_config_with_valid_yaml_file(self):
        """Test loading configuration from a valid YAML file."""
        mock_config = {
            "store_file_path": "/custom/store.json",
            "model_name": "gpt-4o",
            "analysis_model_name": "gpt-4o-mini",
            "request_timeout": 10,
            "dry_run": True,
            "supported_locales": [
                {"code": "tr", "name": "Turkish"},
                {"code": "fr", "name": "French"},
                {"code": "xx"}
            ],
            "server": {"host": "0.0.0.0", "port": 9000},
            "logging": {
                "log_level": "DEBUG",
                "log_file_path": "test.log"
            }
        }

        config = load_with_yaml(mock_config)

        assert config.store_file_path == "/custom/store.json"
        assert config.model_name == "gpt-4o"
        assert config.analysis_model_name == "gpt-4o-mini"
        assert config.request_timeout == 10.0
        assert config.dry_run is True
        assert config.language_names == {"tr": "Turkish", "fr": "French"}
        assert config.server_host == "0.0.0.0"
        assert config.server_port == 9000
        assert config.openai_client is None

    def test_load_config_with_missing_file_uses_defaults(self):
        """Test that missing config file results in default values."""
        with patch("translation_manager.app_config._load_yaml_config", return_value={}):
            with patch("translation_manager.app_config.load_dotenv"):
                with patch("translation_manager.app_config.setup_logger") as mock_logger:
                    mock_logger.return_value = MagicMock()
                    with patch.dict(os.environ, {}, clear=True):
                        config = load_app_config()

        assert config.model_name == "gpt-4o-mini"
        assert config.analysis_model_name == "gpt-4o-mini"
        assert config.dry_run is False
        assert config.max_concurrent_api_calls == 8
        assert config.requests_per_minute == 600
        assert config.store_file_path == os.path.join(config.project_root, "data/store.json")
        # A missing API key disables translation instead of aborting
        assert config.openai_client is None

    def test_missing_yaml_file_returns_empty_config(self, tmp_path):
        with patch.dict(os.environ, {"TRANSLATION_MANAGER_CONFIG_FILE": str(tmp_path / "absent.yaml")}):
            assert _load_yaml_config(str(tmp_path)) == {}

    def test_invalid_yaml_returns_empty_config(self, tmp_path):
        config_path = tmp_path / "config.yaml"
        config_path.write_text("model_name: [unclosed", encoding="utf-8")
        with patch.dict(os.environ, {"TRANSLATION_MANAGER_CONFIG_FILE": str(config_path)}):
            assert _load_yaml_config(str(tmp_path)) == {}

    def test_load_config_with_environment_overrides(self):
        """Test that environment variables override config file values."""
        mock_config = {"model_name": "gpt-4o", "store_file_path": "data/store.json", "dry_run": True}

        config = load_with_yaml(mock_config, {
            "MODEL_NAME": "gpt-4.1-mini",
            "TRANSLATION_STORE_FILE": "/srv/translations.json"
        })

        assert config.model_name == "gpt-4.1-mini"
        assert config.analysis_model_name == "gpt-4.1-mini"
        assert config.store_file_path == "/srv/translations.json"

    def test_load_config_with_dotenv_file(self):
        """Test that .env file is loaded properly."""
        mock_config = {"dry_run": True}

        with patch("builtins.open", mock_open(read_data=yaml.dump(mock_config))):
            with patch("os.path.exists") as mock_exists:
                # Mock .env file exists in project root
                mock_exists.side_effect = lambda path: path.endswith("/.env") or path.endswith("config.yaml")
                with patch("os.access", return_value=True):
                    with patch("translation_manager.app_config.load_dotenv") as mock_load_dotenv:
                        with patch("translation_manager.app_config.setup_logger") as mock_logger:
                            mock_logger.return_value = MagicMock()
                            with patch.dict(os.environ, {}, clear=True):
                                load_app_config()

        mock_load_dotenv.assert_called_once()
        assert mock_load_dotenv.call_args.args[0].endswith(".env")

    def test_openai_client_creation_with_api_key(self):
        """Test that OpenAI client is created when API key is present."""
        with patch("translation_manager.app_config.AsyncOpenAI") as mock_openai:
            mock_client = MagicMock()
            mock_openai.return_value = mock_client
            config = load_with_yaml({"dry_run": False}, {"OPENAI_API_KEY": "sk-test-key"})

        mock_openai.assert_called_once_with(api_key="sk-test-key", base_url=None)
        assert config.openai_client == mock_client

    def test_dry_run_skips_client_creation(self):
        with patch("translation_manager.app_config.AsyncOpenAI") as mock_openai:
            config = load_with_yaml({"dry_run": True}, {"OPENAI_API_KEY": "sk-test-key"})

        mock_openai.assert_not_called()
        assert config.openai_client is None
