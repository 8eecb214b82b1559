import logging
import re
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from translation_manager.key_store import KeyStore

SYSTEM_TARGET_REGEX = re.compile(r"into (?:.*\()?([\w-]+)\)?\.\n")
USER_TEXT_MARKER = "Text to translate:\n"


def completion_response(content=None, tool_calls=None):
    """Shape of an ``openai`` chat completion, reduced to what the code reads."""
    message = SimpleNamespace(content=content, tool_calls=tool_calls)
    return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def requested_translation(kwargs):
    """(target language code, text) of a translation request made through the fake client."""
    system_prompt = kwargs['messages'][0]['content']
    user_prompt = kwargs['messages'][1]['content']
    language = SYSTEM_TARGET_REGEX.search(system_prompt).group(1)
    return language, user_prompt.split(USER_TEXT_MARKER, 1)[1]


def make_completion_client(translate=None, side_effect=None):
    """
    Fake ``AsyncOpenAI`` client. ``translate(text, language)`` produces the model answer;
    by default the text is prefixed with the language code, e.g. ``tr:Save``.
    """
    translate = translate or (lambda text, language: f"{language}:{text}")

    async def create(**kwargs):
        language, text = requested_translation(kwargs)
        return completion_response(translate(text, language))

    client = MagicMock()
    client.chat.completions.create = AsyncMock(side_effect=side_effect or create)
    return client


@pytest.fixture
def store():
    """Empty in-memory key store."""
    return KeyStore()


@pytest.fixture
def project(store):
    return store.create_project("Shop", "en", ["en", "tr"])


@pytest.fixture
def category(store, project):
    return store.create_category(project.id, "ui")


@pytest.fixture
def completion_client():
    return make_completion_client()


@pytest.fixture(autouse=True)
def package_logger_propagates():
    """Let caplog see package records even after ``setup_logger`` disabled propagation."""
    package_logger = logging.getLogger("translation_manager")
    previous = package_logger.propagate
    package_logger.propagate = True
    yield
    package_logger.propagate = previous
