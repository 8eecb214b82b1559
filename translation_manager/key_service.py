"""Creating, editing and re-synchronising translation keys, with machine translation."""
import asyncio
import logging
from typing import Any, List, Optional, Tuple

from tqdm.asyncio import tqdm

from translation_manager.errors import InvalidArgumentError, NotFoundError, StaleWriteError
from translation_manager.key_store import KeyStore
from translation_manager.models import (
    Project,
    TranslationKey,
    TranslationValue,
    Value,
    parse_value,
)
from translation_manager.translator import Translator

logger = logging.getLogger(__name__)

MAX_RESYNC_ATTEMPTS = 3


class TranslationKeyService:
    """
    Orchestrates the write path: validate the request, translate the source value
    into every other project language, then persist one value per language.
    """

    def __init__(self, store: KeyStore, translator: Translator):
        self.store = store
        self.translator = translator

    async def _build_values(self, project: Project, source: Value, description: str,
                            existing: Optional[TranslationKey] = None,
                            languages_to_translate: Optional[List[str]] = None,
                            source_language: Optional[str] = None) -> List[TranslationValue]:
        """
        One ``TranslationValue`` per project language in project order. ``source`` is the
        value of ``source_language`` (the main language by default); languages not listed
        in ``languages_to_translate`` keep their value from ``existing``.
        """
        source_language = source_language or project.main_language
        if languages_to_translate is None:
            languages_to_translate = [lang for lang in project.languages if lang != source_language]
        translated = await self.translator.translate_for_languages(
            source, languages_to_translate, context=description or None
        )

        values = []
        for language in project.languages:
            if language == source_language:
                values.append(TranslationValue.from_value(language, source))
            elif language in translated:
                values.append(TranslationValue.from_value(language, translated[language]))
            else:
                values.append(existing.value_for(language))
        return values

    async def create_key(self, project_id: str, category_id: str, key: str, value_type: Any, value: Any,
                         description: str = "") -> TranslationKey:
        """
        Create a translation key and machine-translate its source value.

        Args:
            project_id: Owning project.
            category_id: Category the key is filed under (same project).
            key: Dot-path such as ``common.buttons.save``.
            value_type: ``text``, ``object`` or ``array``.
            value: Source-language value, in the project's main language.
            description: Optional context, also passed to the translator.

        Returns:
            TranslationKey: The persisted key. Translations that failed hold the source value.
        """
        project = self.store.get_project(project_id)
        category = self.store.get_category(category_id)
        if category.project_id != project.id:
            raise InvalidArgumentError("Category belongs to a different project.")
        key = (key or "").strip()
        # Reject before spending any completion calls.
        self.store.check_key_available(project.id, key)
        source = parse_value(value_type, value)

        values = await self._build_values(project, source, description)
        translation_key = self.store.add_key(
            project.id, category.id, key, source.value_type, values, description=description
        )
        logger.info("Created translation key '%s' with %d language value(s).", key, len(values))
        return translation_key

    async def update_key(self, key_id: str, key: str, value_type: Any, value: Any,
                         category_id: Optional[str] = None, description: Optional[str] = None) -> TranslationKey:
        """Replace a key's source value and regenerate every non-source value from it."""
        translation_key = self.store.get_key(key_id)
        project = self.store.get_project(translation_key.project_id)
        category_id = category_id or translation_key.category_id
        category = self.store.get_category(category_id)
        if category.project_id != project.id:
            raise InvalidArgumentError("Category belongs to a different project.")
        key = (key or "").strip()
        self.store.check_key_available(project.id, key, ignore_key_id=key_id)
        source = parse_value(value_type, value)
        if description is None:
            description = translation_key.description

        translation_key.key = key
        translation_key.category_id = category.id
        translation_key.description = description
        translation_key.value_type = source.value_type
        translation_key.values = await self._build_values(project, source, description)
        self.store.replace_key(translation_key)
        logger.info("Updated translation key '%s'.", key)
        return translation_key

    def _source_entry(self, project: Project, translation_key: TranslationKey,
                      previous_main_language: Optional[str]) -> Optional[Tuple[str, Value]]:
        """The key's source language and value; the previous main language stands in after a switch."""
        for language in (project.main_language, previous_main_language):
            entry = translation_key.value_for(language) if language else None
            if entry is None:
                continue
            try:
                return language, parse_value(entry.value_type, entry.value)
            except InvalidArgumentError as exc:
                logger.warning("Key '%s' holds an unusable '%s' value (%s).",
                               translation_key.key, language, exc.message)
        logger.warning("Key '%s' has no usable value in main language '%s'; skipping.",
                       translation_key.key, project.main_language)
        return None

    async def _resync_key_once(self, project: Project, translation_key: TranslationKey, regenerate: bool,
                               previous_main_language: Optional[str]) -> bool:
        found = self._source_entry(project, translation_key, previous_main_language)
        if found is None:
            return False
        source_language, source = found
        present = {entry.language for entry in translation_key.values}
        others = [lang for lang in project.languages if lang != source_language]
        if regenerate:
            languages_to_translate = others
        else:
            languages_to_translate = [lang for lang in others if lang not in present]
            stale = present - set(project.languages)
            if not languages_to_translate and not stale and len(translation_key.values) == len(project.languages):
                return False

        read_at = translation_key.updated_at
        translation_key.value_type = source.value_type
        translation_key.values = await self._build_values(
            project, source, translation_key.description, existing=translation_key,
            languages_to_translate=languages_to_translate, source_language=source_language,
        )
        self.store.replace_key(translation_key, expected_updated_at=read_at)
        return True

    async def _resync_key(self, project: Project, translation_key: TranslationKey, regenerate: bool,
                          previous_main_language: Optional[str] = None) -> bool:
        """Re-sync one key; an edit that lands while translating is re-read and synced again."""
        for _ in range(MAX_RESYNC_ATTEMPTS):
            try:
                return await self._resync_key_once(project, translation_key, regenerate, previous_main_language)
            except StaleWriteError:
                logger.info("Key '%s' changed while being translated; syncing the stored version.",
                            translation_key.key)
            except NotFoundError:
                logger.info("Key '%s' was deleted while being translated; skipping.", translation_key.key)
                return False
            try:
                translation_key = self.store.get_key(translation_key.id)
            except NotFoundError:
                return False
        logger.warning("Key '%s' kept changing during synchronisation; left as stored.", translation_key.key)
        return False

    async def _resync_project(self, project_id: str, regenerate: bool, show_progress: bool,
                              previous_main_language: Optional[str] = None) -> int:
        project = self.store.get_project(project_id)
        keys = self.store.list_keys(project.id)
        tasks = [
            self._resync_key(project, translation_key, regenerate, previous_main_language)
            for translation_key in keys
        ]
        if show_progress:
            changed = [await coro for coro in tqdm.as_completed(
                tasks, desc=f"Translating {project.name}", unit="key")]
        else:
            changed = await asyncio.gather(*tasks)
        return sum(1 for was_changed in changed if was_changed)

    async def sync_project_languages(self, project_id: str, show_progress: bool = False,
                                     previous_main_language: Optional[str] = None) -> int:
        """
        Bring every key of a project in line with its current languages: translate values
        for newly added languages and drop values for removed ones.

        Returns:
            int: The number of keys that changed.
        """
        changed = await self._resync_project(project_id, regenerate=False, show_progress=show_progress,
                                             previous_main_language=previous_main_language)
        logger.info("Synchronised languages on %d translation key(s).", changed)
        return changed

    async def retranslate_project(self, project_id: str, show_progress: bool = False) -> int:
        """Regenerate every non-source value of every key in the project from its source value."""
        changed = await self._resync_project(project_id, regenerate=True, show_progress=show_progress)
        logger.info("Re-translated %d translation key(s).", changed)
        return changed

    async def update_project(self, project_id: str, **changes: Any) -> Project:
        """Apply project changes; a change of languages re-synchronises the project's keys."""
        before = self.store.get_project(project_id)
        project = self.store.update_project(project_id, **changes)
        if project.languages != before.languages or project.main_language != before.main_language:
            await self.sync_project_languages(project.id, previous_main_language=before.main_language)
        return project
