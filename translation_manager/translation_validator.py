import logging
import re
from collections import Counter
from typing import List, Set, Tuple

from translation_manager.errors import InvalidArgumentError
from translation_manager.models import TranslationKey, parse_value, iter_leaf_strings

logger = logging.getLogger(__name__)

# Placeholders like {0}, {name}, {count}
PLACEHOLDER_REGEX = re.compile(r'\{([^{}]+)\}')


def check_key_coverage(expected_languages: Set[str], actual_languages: Set[str]) -> Tuple[Set[str], Set[str]]:
    """
    Compares the languages a key carries values for against the project's languages.

    Args:
        expected_languages: The languages configured on the project.
        actual_languages: The languages present in the key's ``values``.

    Returns:
        A tuple containing two sets:
        - missing: Languages of the project without a value on the key.
        - extra: Languages with a value on the key that the project no longer has.
    """
    missing = expected_languages - actual_languages
    extra = actual_languages - expected_languages
    return missing, extra


def check_placeholder_parity(base_string: str, target_string: str) -> bool:
    """
    Checks if the set of placeholders is identical between a source and a translated string.
    Placeholders are expected in the format {<name>}, e.g. {0} or {count}.
    Reordering is allowed.

    Args:
        base_string: The source-language string.
        target_string: The translated string.

    Returns:
        True if both strings carry the same placeholders the same number of times.
    """
    base_placeholders = Counter(PLACEHOLDER_REGEX.findall(base_string))
    target_placeholders = Counter(PLACEHOLDER_REGEX.findall(target_string))
    return base_placeholders == target_placeholders


def _leaf_strings(key: TranslationKey, language: str) -> List[str]:
    entry = key.value_for(language)
    if entry is None:
        return []
    try:
        return list(iter_leaf_strings(parse_value(entry.value_type, entry.value)))
    except InvalidArgumentError:
        return []


def audit_translation_key(key: TranslationKey, languages: List[str], main_language: str) -> List[str]:
    """
    Collects problems on a single key: language coverage, duplicated languages,
    mixed value types and placeholder mismatches against the source value.
    """
    problems: List[str] = []
    present = [entry.language for entry in key.values]

    duplicates = sorted(lang for lang, count in Counter(present).items() if count > 1)
    if duplicates:
        problems.append(f"Key `{key.key}` has more than one value for: {', '.join(duplicates)}.")

    missing, extra = check_key_coverage(set(languages), set(present))
    if missing:
        problems.append(f"Key `{key.key}` is missing values for: {', '.join(sorted(missing))}.")
    if extra:
        problems.append(f"Key `{key.key}` has values for languages not in the project: {', '.join(sorted(extra))}.")

    if any(entry.value_type is not key.value_type for entry in key.values):
        problems.append(f"Key `{key.key}` mixes value types across languages.")

    source_leaves = _leaf_strings(key, main_language)
    for language in languages:
        if language == main_language:
            continue
        target_leaves = _leaf_strings(key, language)
        if len(target_leaves) != len(source_leaves):
            continue
        for source_leaf, target_leaf in zip(source_leaves, target_leaves):
            if not check_placeholder_parity(source_leaf, target_leaf):
                problems.append(f"Placeholder mismatch for key `{key.key}` in '{language}'.")
                break

    return problems


def audit_project(store, project_id: str) -> List[str]:
    """
    Runs every key-level check over a project.

    Args:
        store: The ``KeyStore`` holding the project.
        project_id: The project to audit.

    Returns:
        A list of problem descriptions. An empty list means the project is consistent.
    """
    project = store.get_project(project_id)
    problems: List[str] = []
    for key in store.list_keys(project_id):
        problems.extend(audit_translation_key(key, project.languages, project.main_language))

    if problems:
        logger.warning("Audit of project '%s' found %d problem(s).", project.name, len(problems))
    else:
        logger.info("Audit of project '%s' passed.", project.name)
    return problems
