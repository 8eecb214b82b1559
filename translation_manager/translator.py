"""
Completion-backed translation of text, object and array values.

Every string leaf is sent to the chat completion API on its own, concurrently,
bounded by a semaphore and a rate limiter. A leaf whose call fails, times out or
comes back empty keeps its source text; nothing here raises to the caller.
"""
import asyncio
import logging
import re
import uuid
from typing import Any, Dict, List, Optional, Tuple

import tiktoken
from aiolimiter import AsyncLimiter
from openai import AsyncOpenAI, OpenAIError
from openai.types.chat import (
    ChatCompletionSystemMessageParam,
    ChatCompletionUserMessageParam
)

from translation_manager.errors import UpstreamTranslationFailure
from translation_manager.models import ArrayValue, ObjectValue, TextValue, Value
from translation_manager.translation_validator import check_placeholder_parity

logger = logging.getLogger(__name__)

# Lower bound for the completion budget of a single leaf.
MIN_COMPLETION_TOKENS = 150
# Translations can be longer than their source; size the budget generously.
COMPLETION_TOKEN_FACTOR = 4

THINK_BLOCK_REGEX = re.compile(r"<think>.*?</think>", flags=re.DOTALL)


def count_tokens(text: str, model_name: str = 'gpt-4o-mini') -> int:
    """Count the number of tokens in ``text`` for ``model_name``.

    ``tiktoken.encoding_for_model`` occasionally attempts a network request to
    download model data if it is not already cached. If obtaining the encoding
    for the requested model fails, the function falls back to ``gpt2`` which
    ships with ``tiktoken``. As a last resort, a simple whitespace split is used.
    """
    try:
        encoding = tiktoken.encoding_for_model(model_name)
    except Exception:
        try:
            encoding = tiktoken.get_encoding("gpt2")
        except Exception:
            return len(text.split())

    try:
        return len(encoding.encode(text))
    except Exception:
        return len(text.split())


def extract_placeholders(text: str) -> Tuple[str, Dict[str, str]]:
    """
    Replace placeholders and HTML-like tags with opaque tokens the model will not touch.

    Args:
        text (str): The text to process.

    Returns:
        Tuple[str, Dict[str, str]]: The processed text and the token -> original mapping.
    """
    if not isinstance(text, str):
        raise ValueError("Input text must be a string.")

    # `{0}` / `{name}` placeholders and tags such as `<b>` or `</a>`
    pattern = re.compile(r'(<[^<>]+>)|({[^{}]+})')
    placeholder_mapping = {}

    def replace_placeholder(match):
        placeholder_token = f"__PH_{uuid.uuid4().hex}__"
        placeholder_mapping[placeholder_token] = match.group(0)
        return placeholder_token

    processed_text = pattern.sub(replace_placeholder, text)
    return processed_text, placeholder_mapping


def restore_placeholders(text: str, placeholder_mapping: Dict[str, str]) -> str:
    for token, placeholder in placeholder_mapping.items():
        text = text.replace(token, placeholder)
    return text


def clean_translated_text(translated_text: str, original_text: str) -> str:
    """
    Removes reasoning blocks and the quotes or brackets a model sometimes wraps
    around its answer, unless the original text was wrapped the same way.

    Args:
        translated_text (str): The raw model answer.
        original_text (str): The source text.

    Returns:
        str: The cleaned translation.
    """
    translated_text = THINK_BLOCK_REGEX.sub("", translated_text).strip()
    for opening, closing in (('"', '"'), ('“', '”'), ('[', ']')):
        if len(translated_text) >= 2 and translated_text.startswith(opening) and translated_text.endswith(closing) \
                and not (original_text.startswith(opening) and original_text.endswith(closing)):
            translated_text = translated_text[1:-1]
    return translated_text


def build_system_prompt(target_language: str) -> str:
    return (
        "You are a professional translator specializing in software localization. "
        f"Translate the user's text into {target_language}.\n"
        "- Do not translate or modify placeholder tokens enclosed in double underscores "
        "(e.g. `__PH_abc123__`); keep them exactly as they are.\n"
        "- Keep the meaning, tone and length appropriate for a user interface.\n"
        "- Do not add quotation marks, brackets, notes or explanations.\n"
        "- Respond with the translation only."
    )


def build_user_prompt(processed_text: str, context: Optional[str]) -> str:
    context_text = f"Context: {context}\n\n" if context else ""
    return f"{context_text}Text to translate:\n{processed_text}"


class Translator:
    """Translates values leaf by leaf through a chat completion model."""

    def __init__(
            self,
            client: Optional[AsyncOpenAI],
            model_name: str = 'gpt-4o-mini',
            max_concurrent_api_calls: int = 8,
            requests_per_minute: int = 600,
            request_timeout: float = 30.0,
            max_completion_tokens: int = 500,
            temperature: float = 0.3,
            language_names: Optional[Dict[str, str]] = None
    ):
        self.client = client
        self.model_name = model_name
        self.request_timeout = request_timeout
        self.max_completion_tokens = max_completion_tokens
        self.temperature = temperature
        self.language_names = language_names or {}
        self._semaphore = asyncio.Semaphore(max_concurrent_api_calls)
        self._rate_limiter = AsyncLimiter(max_rate=requests_per_minute, time_period=60)

    @property
    def enabled(self) -> bool:
        return self.client is not None

    def language_label(self, language_code: str) -> str:
        """Human-readable language for prompts, e.g. ``Turkish (tr)``; the bare code when unknown."""
        name = self.language_names.get(language_code)
        return f"{name} ({language_code})" if name else language_code

    def _completion_budget(self, text: str) -> int:
        estimate = count_tokens(text, self.model_name) * COMPLETION_TOKEN_FACTOR
        return max(MIN_COMPLETION_TOKENS, min(estimate, self.max_completion_tokens))

    async def _request_translation(self, text: str, target_language: str, context: Optional[str]) -> str:
        processed_text, placeholder_mapping = extract_placeholders(text)
        messages = [
            ChatCompletionSystemMessageParam(role="system", content=build_system_prompt(
                self.language_label(target_language))),
            ChatCompletionUserMessageParam(role="user", content=build_user_prompt(processed_text, context)),
        ]

        async with self._semaphore, self._rate_limiter:
            try:
                response = await asyncio.wait_for(
                    self.client.chat.completions.create(
                        model=self.model_name,
                        messages=messages,
                        temperature=self.temperature,
                        max_tokens=self._completion_budget(processed_text),
                    ),
                    timeout=self.request_timeout,
                )
            except asyncio.TimeoutError as exc:
                raise UpstreamTranslationFailure(
                    f"Completion request timed out after {self.request_timeout:.0f}s") from exc
            except OpenAIError as exc:
                raise UpstreamTranslationFailure(
                    f"API error: {exc.__class__.__name__} - {exc}") from exc

        content = response.choices[0].message.content if response.choices else None
        if not content or not content.strip():
            raise UpstreamTranslationFailure("Completion returned an empty response")

        translated_text = restore_placeholders(content.strip(), placeholder_mapping)
        translated_text = clean_translated_text(translated_text, text)
        if not translated_text:
            raise UpstreamTranslationFailure("Completion returned only wrapping characters")
        if not check_placeholder_parity(text, translated_text):
            raise UpstreamTranslationFailure("Translation dropped or altered placeholders")
        return translated_text

    async def translate_text(self, text: str, target_language: str, context: Optional[str] = None) -> str:
        """
        Translate one leaf string, falling back to ``text`` on any failure.

        Args:
            text (str): The source string. Empty strings are still dispatched.
            target_language (str): Target language code, e.g. ``tr``.
            context (Optional[str]): Advisory free-text context for the model.

        Returns:
            str: The translation, or the source text when translation was not possible.
        """
        if not self.enabled:
            logger.debug("No completion client configured; keeping source text for '%s'.", target_language)
            return text
        try:
            translated_text = await self._request_translation(text, target_language, context)
            logger.debug("Translated leaf into '%s' successfully.", target_language)
            return translated_text
        except UpstreamTranslationFailure as exc:
            logger.warning("Translation into '%s' failed, keeping source text: %s", target_language, exc.message)
            return text
        except Exception as general_exc:
            logger.error("An unexpected error occurred while translating into '%s': %s",
                         target_language, general_exc, exc_info=True)
            return text

    async def _translate_mapping(self, mapping: Dict[str, Any], target_language: str,
                                 context: Optional[str]) -> Dict[str, Any]:
        string_keys = [k for k, v in mapping.items() if isinstance(v, str)]
        translations = await asyncio.gather(
            *(self.translate_text(mapping[k], target_language, context) for k in string_keys)
        )
        translated = dict(mapping)
        translated.update(zip(string_keys, translations))
        return translated

    async def _translate_item(self, item: Any, target_language: str, context: Optional[str]) -> Any:
        if isinstance(item, str):
            return await self.translate_text(item, target_language, context)
        if isinstance(item, dict):
            return await self._translate_mapping(item, target_language, context)
        return item

    async def translate_value(self, value: Value, target_language: str, context: Optional[str] = None) -> Value:
        """
        Translate every string leaf of ``value``; keys, order, nesting and non-string
        leaves come back unchanged.
        """
        if isinstance(value, TextValue):
            return TextValue(await self.translate_text(value.text, target_language, context))
        if isinstance(value, ObjectValue):
            return ObjectValue(await self._translate_mapping(value.entries, target_language, context))
        if isinstance(value, ArrayValue):
            items = await asyncio.gather(
                *(self._translate_item(item, target_language, context) for item in value.items)
            )
            return ArrayValue(list(items))
        raise TypeError(f"Unsupported value: {value!r}")

    async def translate_for_languages(self, value: Value, target_languages: List[str],
                                      context: Optional[str] = None) -> Dict[str, Value]:
        """
        Translate ``value`` into every language of ``target_languages`` concurrently.

        Returns:
            Dict[str, Value]: Language code -> translated value, in the order given.
        """
        results = await asyncio.gather(
            *(self.translate_value(value, language, context) for language in target_languages)
        )
        return dict(zip(target_languages, results))
