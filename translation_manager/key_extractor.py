"""
Discover translatable strings in web source files (React, HTML, JS/TS).

The completion model is asked, through a forced tool call, to list keys with their
English text. When the model is unavailable or answers with something unusable,
a line-by-line regex scan is used instead.
"""
import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Pattern, Tuple

import jsonschema
from openai import AsyncOpenAI, OpenAIError
from openai.types.chat import (
    ChatCompletionSystemMessageParam,
    ChatCompletionUserMessageParam
)

logger = logging.getLogger(__name__)

EXTRACT_TOOL_NAME = 'extract_translation_keys'

EXTRACTED_KEY_SCHEMA = {
    "type": "object",
    "properties": {
        "key": {"type": "string", "description": "Meaningful translation key name based on the content"},
        "value": {"type": "string", "description": "English text content that should be translated"},
        "description": {"type": "string", "description": "Brief description of where this was found in the file"},
        "lineNumber": {"type": "number", "description": "Line number where this translation key was found"},
        "confidence": {
            "type": "number",
            "description": "Confidence score (0-1) for how certain this should be translated",
        },
    },
    "required": ["key", "value", "lineNumber", "confidence"],
}

EXTRACTION_SCHEMA = {
    "type": "object",
    "properties": {
        "keys": {
            "type": "array",
            "description": "Array of extracted translation keys",
            "items": EXTRACTED_KEY_SCHEMA,
        }
    },
    "required": ["keys"],
}

EXTRACTION_TOOL = {
    "type": "function",
    "function": {
        "name": EXTRACT_TOOL_NAME,
        "description": "Extract translation keys and their English text values from web file content",
        "parameters": EXTRACTION_SCHEMA,
    },
}


@dataclass
class ExtractedKey:
    key: str
    value: str
    line_number: int
    confidence: float
    description: str = ""

    def to_document(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "value": self.value,
            "description": self.description,
            "lineNumber": self.line_number,
            "confidence": self.confidence,
        }


@dataclass(frozen=True)
class ExtractionPattern:
    regex: Pattern[str]
    confidence: float
    type: str


def _pattern(regex: str, confidence: float, pattern_type: str) -> ExtractionPattern:
    return ExtractionPattern(re.compile(regex), confidence, pattern_type)


# Group 1 is the key (or the text); group 2, when present, is the text.
EXTRACTION_PATTERNS: Tuple[ExtractionPattern, ...] = (
    # Translation function calls
    _pattern(r"""t\s*\(\s*['"`]([^'"`]+)['"`]\s*,\s*['"`]([^'"`]+)['"`]\s*\)""", 0.95, 'translation_function'),
    _pattern(r"""t\s*\(\s*['"`]([^'"`]+)['"`]\s*\)""", 0.9, 'translation_function'),
    _pattern(r"""useTranslation\s*\(\s*['"`]([^'"`]+)['"`]\s*\)""", 0.9, 'translation_function'),
    _pattern(r"""translate\s*\(\s*['"`]([^'"`]+)['"`]\s*\)""", 0.9, 'translation_function'),
    _pattern(r"""\$t\s*\(\s*['"`]([^'"`]+)['"`]\s*\)""", 0.9, 'translation_function'),
    _pattern(r"""i18n\.t\s*\(\s*['"`]([^'"`]+)['"`]\s*\)""", 0.9, 'translation_function'),
    # HTML text content
    _pattern(r">\s*([A-Z][a-z\s]+[a-z])\s*<", 0.8, 'html_text'),
    _pattern(r"<h[1-6][^>]*>\s*([^<]+)\s*</h[1-6]>", 0.9, 'html_heading'),
    _pattern(r"<p[^>]*>\s*([^<]+)\s*</p>", 0.8, 'html_paragraph'),
    _pattern(r"<span[^>]*>\s*([^<]+)\s*</span>", 0.7, 'html_span'),
    _pattern(r"<div[^>]*>\s*([^<]+)\s*</div>", 0.7, 'html_div'),
    _pattern(r"<label[^>]*>\s*([^<]+)\s*</label>", 0.9, 'html_label'),
    _pattern(r"<button[^>]*>\s*([^<]+)\s*</button>", 0.9, 'html_button'),
    _pattern(r"<a[^>]*>\s*([^<]+)\s*</a>", 0.8, 'html_link'),
    # HTML attributes
    _pattern(r"""placeholder\s*=\s*['"`]([^'"`]+)['"`]""", 0.8, 'html_placeholder'),
    _pattern(r"""title\s*=\s*['"`]([^'"`]+)['"`]""", 0.8, 'html_title'),
    _pattern(r"""alt\s*=\s*['"`]([^'"`]+)['"`]""", 0.8, 'html_alt'),
    _pattern(r"""aria-label\s*=\s*['"`]([^'"`]+)['"`]""", 0.8, 'html_aria_label'),
    # Object properties and array items with English text
    _pattern(r"""['"`]([^'"`]+)['"`]\s*:\s*['"`]([^'"`]+)['"`]""", 0.8, 'object_property'),
    _pattern(r"""['"`]([^'"`]+)['"`]\s*,""", 0.6, 'array_item'),
    # Form labels and error messages
    _pattern(r"""label\s*=\s*['"`]([^'"`]+)['"`]""", 0.8, 'form_label'),
    _pattern(r"""error\s*=\s*['"`]([^'"`]+)['"`]""", 0.8, 'error_message'),
)

KEY_PREFIXES = {
    'translation_function': 't_',
    'html_text': 'html_',
    'html_heading': 'heading_',
    'html_paragraph': 'paragraph_',
    'html_span': 'span_',
    'html_div': 'div_',
    'html_label': 'label_',
    'html_button': 'button_',
    'html_link': 'link_',
    'html_placeholder': 'placeholder_',
    'html_title': 'title_',
    'html_alt': 'alt_',
    'html_aria_label': 'aria_',
    'object_property': 'prop_',
    'array_item': 'item_',
    'form_label': 'label_',
    'error_message': 'error_',
}

CODE_LINE_PREFIXES = ('//', '/*', '*', 'import', 'export', 'const', 'let', 'var', 'function', 'return')
CODE_LINE_MARKERS = ('console.log', '//', 'className=', 'style=', 'onClick=', 'onChange=')

CODE_TEXT_PATTERNS = (
    re.compile(r'^[A-Z_]+$'),          # ALL_CAPS constants
    re.compile(r'^[a-z_]+$'),          # snake_case variables
    re.compile(r'^[a-z]+[A-Z][a-z]+$'),  # camelCase variables
    re.compile(r'^[0-9]+$'),
    re.compile(r'^[^a-zA-Z]*$'),
    re.compile(r'^[<>/\s]+$'),
    re.compile(r'^[{}\[\]]+$'),
    re.compile(r'^[;:,()]+$'),
)


def is_code_or_comment(line: str) -> bool:
    trimmed_line = line.strip()
    return trimmed_line.startswith(CODE_LINE_PREFIXES) or any(marker in trimmed_line for marker in CODE_LINE_MARKERS)


def is_valid_translation_text(text: str) -> bool:
    """True when ``text`` reads like user-facing copy rather than an identifier or markup."""
    trimmed_text = text.strip()
    if len(trimmed_text) < 2:
        return False
    if not re.search(r'[a-zA-Z]', trimmed_text):
        return False
    return not any(pattern.search(trimmed_text) for pattern in CODE_TEXT_PATTERNS)


def generate_key_name(key: str, value: str, pattern_type: str) -> str:
    """Derive a snake_case key name (at most 50 characters) with a prefix for the match type."""
    source = value if key != value else key
    key_name = source.lower()
    key_name = re.sub(r'[^a-z0-9\s]', '', key_name)
    key_name = re.sub(r'\s+', '_', key_name)
    key_name = re.sub(r'_+', '_', key_name)
    key_name = key_name.strip('_')[:50]
    return KEY_PREFIXES.get(pattern_type, '') + key_name


def fallback_analysis(file_content: str, file_name: str) -> List[ExtractedKey]:
    """
    Regex-based extraction used when the model is unavailable.

    Args:
        file_content: Source text of the file.
        file_name: Name used in the generated descriptions.

    Returns:
        List[ExtractedKey]: One entry per distinct key/text, in order of appearance.
    """
    keys: List[ExtractedKey] = []
    seen_keys = set()
    seen_values = set()

    for line_index, line in enumerate(file_content.split('\n')):
        if is_code_or_comment(line):
            continue
        for pattern in EXTRACTION_PATTERNS:
            for match in pattern.regex.finditer(line):
                raw_key = match.group(1)
                value = (match.group(2) if match.re.groups > 1 else None) or raw_key
                if not raw_key or not is_valid_translation_text(value):
                    continue
                if raw_key in seen_keys or value in seen_values:
                    continue
                seen_keys.add(raw_key)
                seen_values.add(value)
                keys.append(ExtractedKey(
                    key=generate_key_name(raw_key, value, pattern.type),
                    value=value,
                    description=f"{pattern.type} found in {file_name} at line {line_index + 1}",
                    line_number=line_index + 1,
                    confidence=pattern.confidence,
                ))
    return keys


def build_extraction_system_prompt(project_languages: List[str], main_language: str) -> str:
    return f"""You are an expert web developer and internationalization specialist.
Analyze web files (React, HTML, JavaScript, TypeScript) and extract translation keys with their English text values.

Project Languages: {', '.join(project_languages)}
Main Language: {main_language}

Look for:
1. Hardcoded English text in HTML elements (h1, h2, p, span, div, label, button, a, etc.)
2. HTML attributes with English text (placeholder, title, alt, aria-label, etc.)
3. Existing translation function calls (t(), useTranslation(), translate(), etc.)
4. Object properties with English text values
5. Array items with English text
6. Form labels, buttons, error messages, status messages
7. JSX text content that should be translated

Generate meaningful key names based on the content and context."""


class KeyExtractor:
    """Model-assisted key discovery with a regex fallback."""

    def __init__(self, client: Optional[AsyncOpenAI], model_name: str = 'gpt-4o-mini',
                 request_timeout: float = 60.0):
        self.client = client
        self.model_name = model_name
        self.request_timeout = request_timeout

    async def _analyze_with_model(self, file_content: str, file_name: str, project_languages: List[str],
                                  main_language: str) -> Optional[List[ExtractedKey]]:
        response = await self.client.chat.completions.create(
            model=self.model_name,
            messages=[
                ChatCompletionSystemMessageParam(role="system", content=build_extraction_system_prompt(
                    project_languages, main_language)),
                ChatCompletionUserMessageParam(role="user", content=(
                    f"Analyze this web file and extract all translation keys:\n\nFile: {file_name}\n\n{file_content}"
                )),
            ],
            tools=[EXTRACTION_TOOL],
            tool_choice={"type": "function", "function": {"name": EXTRACT_TOOL_NAME}},
            temperature=0.1,
            max_tokens=2000,
            timeout=self.request_timeout,
        )
        tool_calls = response.choices[0].message.tool_calls if response.choices else None
        if not tool_calls or tool_calls[0].function.name != EXTRACT_TOOL_NAME:
            logger.warning("Key analysis for '%s' returned no tool call.", file_name)
            return None

        arguments = json.loads(tool_calls[0].function.arguments)
        jsonschema.validate(instance=arguments, schema=EXTRACTION_SCHEMA)
        return [
            ExtractedKey(
                key=item["key"],
                value=item["value"],
                description=item.get("description", ""),
                line_number=int(item["lineNumber"]),
                confidence=float(item["confidence"]),
            )
            for item in arguments["keys"]
        ]

    async def analyze(self, file_content: str, file_name: str, project_languages: Optional[List[str]] = None,
                      main_language: str = 'en') -> List[ExtractedKey]:
        """
        Extract translation keys from a source file.

        Args:
            file_content: The file's text.
            file_name: The file's name, passed to the model and used in descriptions.
            project_languages: Languages of the target project, for the model's context.
            main_language: The project's source language.

        Returns:
            List[ExtractedKey]: Keys from the model, or from the regex scan if the model failed.
        """
        project_languages = project_languages or [main_language]
        if self.client is not None:
            try:
                extracted = await self._analyze_with_model(file_content, file_name, project_languages, main_language)
                if extracted is not None:
                    logger.info("Model extracted %d key(s) from '%s'.", len(extracted), file_name)
                    return extracted
            except json.JSONDecodeError as json_exc:
                logger.error("Key analysis failed: model did not return valid JSON arguments. Error: %s", json_exc)
            except jsonschema.ValidationError as schema_exc:
                logger.error("Key analysis failed: arguments did not match the schema. Error: %s", schema_exc.message)
            except OpenAIError as api_exc:
                logger.error("API error during key analysis: %s - %s", api_exc.__class__.__name__, api_exc)

        extracted = fallback_analysis(file_content, file_name)
        logger.info("Regex fallback extracted %d key(s) from '%s'.", len(extracted), file_name)
        return extracted
