"""Configuration: config.yaml, .env files and environment overrides."""
import logging
import os
import sys
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import yaml
from dotenv import load_dotenv
from openai import AsyncOpenAI

from translation_manager.logging_config import setup_logger

CONFIG_FILE_ENV = 'TRANSLATION_MANAGER_CONFIG_FILE'
DEFAULT_STORE_FILE = 'data/store.json'
DEFAULT_LOG_FILE = 'logs/translation_manager.log'


@dataclass
class AppConfig:
    """Settings shared by the HTTP API and the command line tools."""
    project_root: str
    store_file_path: str

    # Completion models
    model_name: str
    analysis_model_name: str
    max_completion_tokens: int
    request_timeout: float

    # Throughput limits for completion calls
    dry_run: bool
    max_concurrent_api_calls: int
    requests_per_minute: int

    # Language code -> display name, used in translation prompts
    language_names: Dict[str, str] = field(default_factory=dict)

    server_host: str = '127.0.0.1'
    server_port: int = 8000

    # None when running dry or without an API key
    openai_client: Optional[AsyncOpenAI] = None


def _compute_project_root() -> str:
    package_dir = os.path.dirname(os.path.realpath(__file__))
    return os.path.abspath(os.path.join(package_dir, os.pardir))


def _dotenv_candidates(project_root: str) -> List[str]:
    return [os.path.join(project_root, '.env'), os.path.join(project_root, 'docker', '.env')]


def _load_dotenv_files(project_root: str) -> Optional[str]:
    """Load the first .env file found; returns its path."""
    for candidate in _dotenv_candidates(project_root):
        if os.path.exists(candidate):
            load_dotenv(candidate)
            return candidate
    return None


def _load_yaml_config(project_root: str) -> Dict[str, Any]:
    """
    Read config.yaml, or the file named by TRANSLATION_MANAGER_CONFIG_FILE.

    The logger is not configured yet at this point, so problems are reported on
    stderr. Any problem yields an empty mapping and the defaults apply.
    """
    config_file = os.path.abspath(os.environ.get(CONFIG_FILE_ENV, os.path.join(project_root, 'config.yaml')))

    if not os.path.exists(config_file):
        print(f"Warning: no configuration file at '{config_file}'; using defaults. "
              f"Create one or point {CONFIG_FILE_ENV} at it.", file=sys.stderr)
        return {}
    if not os.access(config_file, os.R_OK):
        print(f"Error: configuration file '{config_file}' is not readable; using defaults.", file=sys.stderr)
        return {}

    try:
        with open(config_file, 'r', encoding='utf-8') as stream:
            loaded = yaml.safe_load(stream)
    except yaml.YAMLError as e:
        print(f"Error: invalid YAML in '{config_file}': {e}. Using defaults.", file=sys.stderr)
        return {}
    except OSError as e:
        print(f"Error: could not read '{config_file}': {e}. Using defaults.", file=sys.stderr)
        return {}

    if loaded is None:
        print(f"Warning: configuration file '{config_file}' is empty; using defaults.", file=sys.stderr)
        return {}
    if not isinstance(loaded, dict):
        print(f"Error: '{config_file}' must hold a YAML mapping; using defaults.", file=sys.stderr)
        return {}
    print(f"Loaded configuration from: {config_file}", file=sys.stderr)
    return loaded


def _setup_logger_from_config(config: Dict[str, Any]) -> logging.Logger:
    log_config = config.get('logging') or {}
    return setup_logger(
        str(log_config.get('log_level', 'INFO')).upper(),
        log_config.get('log_file_path', DEFAULT_LOG_FILE),
        log_config.get('log_to_console', True),
    )


def _build_language_names(locales: List[Dict[str, str]]) -> Dict[str, str]:
    """``supported_locales`` entries without both a code and a name are ignored."""
    return {
        locale['code']: locale['name']
        for locale in locales
        if locale.get('code') and locale.get('name')
    }


def _resolve_store_path(project_root: str, config: Dict[str, Any]) -> str:
    store_file_path = os.environ.get('TRANSLATION_STORE_FILE') or config.get('store_file_path', DEFAULT_STORE_FILE)
    if os.path.isabs(store_file_path):
        return store_file_path
    return os.path.join(project_root, store_file_path)


def _create_openai_client(dry_run: bool, logger: logging.Logger) -> Optional[AsyncOpenAI]:
    """
    Build the completion client. A missing API key is not fatal: the application
    starts and every translation keeps its source text.
    """
    if dry_run:
        logger.info("Dry run: completion client disabled, translations keep their source text.")
        return None

    api_key = os.environ.get('OPENAI_API_KEY')
    if not api_key:
        logger.warning("OPENAI_API_KEY is not set; machine translation is disabled.")
        logger.warning("New keys will carry the source text in every language until re-translated.")
        return None
    if not api_key.startswith('sk-'):
        logger.warning("OPENAI_API_KEY does not start with 'sk-'; requests may be rejected.")

    client = AsyncOpenAI(api_key=api_key, base_url=os.environ.get('OPENAI_BASE_URL') or None)
    logger.info("Completion client initialised.")
    return client


def load_app_config() -> AppConfig:
    """
    Build the application configuration.

    Order of precedence: environment variables (including those loaded from .env),
    then config.yaml, then built-in defaults. Also configures the package logger.

    Returns:
        AppConfig: The loaded application configuration.
    """
    project_root = _compute_project_root()
    dotenv_path = _load_dotenv_files(project_root)
    config = _load_yaml_config(project_root)
    logger = _setup_logger_from_config(config)

    if dotenv_path:
        logger.info("Loaded environment variables from: %s", dotenv_path)
    else:
        logger.info("No .env file in '%s' or its docker/ directory; using the process environment.", project_root)

    dry_run = bool(config.get('dry_run', False))
    model_name = os.environ.get('MODEL_NAME') or config.get('model_name', 'gpt-4o-mini')
    server_config = config.get('server') or {}

    return AppConfig(
        project_root=project_root,
        store_file_path=_resolve_store_path(project_root, config),
        model_name=model_name,
        analysis_model_name=config.get('analysis_model_name', model_name),
        max_completion_tokens=int(config.get('max_completion_tokens', 500)),
        request_timeout=float(config.get('request_timeout', 30.0)),
        dry_run=dry_run,
        max_concurrent_api_calls=int(config.get('max_concurrent_api_calls', 8)),
        requests_per_minute=int(config.get('requests_per_minute', 600)),
        language_names=_build_language_names(config.get('supported_locales') or []),
        server_host=server_config.get('host', '127.0.0.1'),
        server_port=int(server_config.get('port', 8000)),
        openai_client=_create_openai_client(dry_run, logger),
    )
