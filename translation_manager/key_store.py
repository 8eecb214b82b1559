"""
JSON document store for projects, categories and translation keys.

Documents live in three collections kept in creation order. When a file path is
given the whole store is written back to disk after every mutation.
"""
import json
import logging
import os
import tempfile
import threading
from typing import Any, Dict, List, Optional

from translation_manager.errors import InvalidArgumentError, NotFoundError, SchemaConflictError, StaleWriteError
from translation_manager.models import (
    Category,
    Project,
    TranslationKey,
    TranslationValue,
    ValueType,
    new_id,
    utc_now,
)
from translation_manager.path_merger import paths_collide, split_key_path

logger = logging.getLogger(__name__)

PROJECTS = 'projects'
CATEGORIES = 'categories'
TRANSLATION_KEYS = 'translationKeys'
COLLECTIONS = (PROJECTS, CATEGORIES, TRANSLATION_KEYS)


def validate_languages(main_language: str, languages: List[str]) -> List[str]:
    """Normalise a project's language list and check its invariants."""
    if not main_language or not isinstance(main_language, str):
        raise InvalidArgumentError("Main language is required.")
    cleaned = [lang.strip() for lang in (languages or [main_language]) if isinstance(lang, str)]
    if not cleaned or any(not lang for lang in cleaned):
        raise InvalidArgumentError("Languages must be a non-empty list of language codes.")
    if len(set(cleaned)) != len(cleaned):
        raise InvalidArgumentError("Languages must not contain duplicates.")
    if main_language.strip() not in cleaned:
        raise InvalidArgumentError(f"Main language '{main_language}' must be one of the project languages.")
    return cleaned


def validate_key_values(project: Project, value_type: ValueType, values: List[TranslationValue]) -> None:
    """Exactly one value per project language, all sharing the key's value type."""
    languages = [entry.language for entry in values]
    if sorted(languages) != sorted(project.languages):
        raise InvalidArgumentError(
            f"Translation key must carry exactly one value per project language "
            f"({', '.join(project.languages)}); got: {', '.join(languages) or 'none'}."
        )
    for entry in values:
        if entry.value_type is not value_type:
            raise InvalidArgumentError(
                f"Value for '{entry.language}' has valueType '{entry.value_type.value}', "
                f"expected '{value_type.value}'."
            )


class KeyStore:
    """Document store backing the HTTP handlers, the services and the exporter."""

    def __init__(self, file_path: Optional[str] = None):
        self.file_path = file_path
        self._lock = threading.RLock()
        self._collections: Dict[str, List[Dict[str, Any]]] = {name: [] for name in COLLECTIONS}
        if file_path:
            self._load()

    # --- persistence -----------------------------------------------------

    def _load(self) -> None:
        if not os.path.exists(self.file_path):
            logger.info("Store file '%s' does not exist yet; starting empty.", self.file_path)
            return
        with open(self.file_path, 'r', encoding='utf-8') as f:
            data = json.load(f)
        for name in COLLECTIONS:
            self._collections[name] = list(data.get(name, []))
        logger.info(
            "Loaded store from '%s' (%d projects, %d categories, %d keys).",
            self.file_path,
            len(self._collections[PROJECTS]),
            len(self._collections[CATEGORIES]),
            len(self._collections[TRANSLATION_KEYS]),
        )

    def _flush(self) -> None:
        if not self.file_path:
            return
        directory = os.path.dirname(os.path.abspath(self.file_path))
        os.makedirs(directory, exist_ok=True)
        fd, temp_path = tempfile.mkstemp(dir=directory, suffix='.tmp')
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                json.dump(self._collections, f, ensure_ascii=False, indent=2)
            os.replace(temp_path, self.file_path)
        except OSError:
            logger.exception("Could not write store file '%s'", self.file_path)
            if os.path.exists(temp_path):
                os.remove(temp_path)
            raise

    def _find(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        for doc in self._collections[collection]:
            if doc.get('id') == doc_id:
                return doc
        return None

    def _replace(self, collection: str, doc: Dict[str, Any]) -> None:
        docs = self._collections[collection]
        for index, existing in enumerate(docs):
            if existing.get('id') == doc['id']:
                docs[index] = doc
                return
        raise NotFoundError(f"Document '{doc['id']}' not found in {collection}.")

    # --- projects --------------------------------------------------------

    def create_project(self, name: str, main_language: str, languages: Optional[List[str]] = None,
                       description: str = "") -> Project:
        if not name or not name.strip():
            raise InvalidArgumentError("Project name is required.")
        languages = validate_languages(main_language, languages or [main_language])
        project = Project(
            id=new_id(),
            name=name.strip(),
            main_language=main_language.strip(),
            languages=languages,
            description=(description or "").strip(),
        )
        with self._lock:
            self._collections[PROJECTS].append(project.to_document())
            self._flush()
        logger.info("Created project '%s' (%s).", project.name, project.id)
        return project

    def get_project(self, project_id: str) -> Project:
        with self._lock:
            doc = self._find(PROJECTS, project_id)
        if doc is None:
            raise NotFoundError("Project not found")
        return Project.from_document(doc)

    def list_projects(self) -> List[Project]:
        with self._lock:
            return [Project.from_document(doc) for doc in self._collections[PROJECTS]]

    def update_project(self, project_id: str, name: Optional[str] = None, main_language: Optional[str] = None,
                       languages: Optional[List[str]] = None, description: Optional[str] = None) -> Project:
        with self._lock:
            project = self.get_project(project_id)
            if name is not None:
                if not name.strip():
                    raise InvalidArgumentError("Project name is required.")
                project.name = name.strip()
            if description is not None:
                project.description = description.strip()
            new_main = main_language if main_language is not None else project.main_language
            new_languages = languages if languages is not None else project.languages
            project.languages = validate_languages(new_main, new_languages)
            project.main_language = new_main.strip()
            project.updated_at = utc_now()
            self._replace(PROJECTS, project.to_document())
            self._flush()
        return project

    def delete_project(self, project_id: str) -> None:
        """Deletes a project together with all of its categories and translation keys."""
        with self._lock:
            project = self.get_project(project_id)
            for name in (CATEGORIES, TRANSLATION_KEYS):
                self._collections[name] = [
                    doc for doc in self._collections[name] if doc.get('projectId') != project_id
                ]
            self._collections[PROJECTS] = [
                doc for doc in self._collections[PROJECTS] if doc.get('id') != project_id
            ]
            self._flush()
        logger.info("Deleted project '%s' and all related data.", project.name)

    # --- categories ------------------------------------------------------

    def _check_parent(self, project_id: str, category_id: Optional[str], parent_category_id: Optional[str]) -> None:
        if parent_category_id is None:
            return
        parent = self.get_category(parent_category_id)
        if parent.project_id != project_id:
            raise InvalidArgumentError("Parent category belongs to a different project.")
        # Walk up from the parent; reaching the category itself means a cycle.
        seen = set()
        current: Optional[Category] = parent
        while current is not None:
            if current.id == category_id or current.id in seen:
                raise InvalidArgumentError("A category cannot be nested under itself or one of its descendants.")
            seen.add(current.id)
            current = self.get_category(current.parent_category_id) if current.parent_category_id else None

    def create_category(self, project_id: str, name: str, parent_category_id: Optional[str] = None,
                        description: str = "") -> Category:
        if not name or not name.strip():
            raise InvalidArgumentError("Category name is required.")
        with self._lock:
            self.get_project(project_id)
            self._check_parent(project_id, None, parent_category_id or None)
            category = Category(
                id=new_id(),
                project_id=project_id,
                name=name.strip(),
                parent_category_id=parent_category_id or None,
                description=(description or "").strip(),
            )
            self._collections[CATEGORIES].append(category.to_document())
            self._flush()
        return category

    def get_category(self, category_id: str) -> Category:
        with self._lock:
            doc = self._find(CATEGORIES, category_id)
        if doc is None:
            raise NotFoundError("Category not found")
        return Category.from_document(doc)

    def list_categories(self, project_id: str) -> List[Category]:
        with self._lock:
            return [
                Category.from_document(doc)
                for doc in self._collections[CATEGORIES]
                if doc.get('projectId') == project_id
            ]

    def update_category(self, category_id: str, name: Optional[str] = None,
                        parent_category_id: Optional[str] = None, description: Optional[str] = None,
                        reparent: bool = False) -> Category:
        """
        Renames or moves a category. ``parent_category_id`` is only applied when
        ``reparent`` is true, so that ``None`` can move a category to the top level.
        """
        with self._lock:
            category = self.get_category(category_id)
            if name is not None:
                if not name.strip():
                    raise InvalidArgumentError("Category name is required.")
                category.name = name.strip()
            if description is not None:
                category.description = description.strip()
            if reparent:
                self._check_parent(category.project_id, category.id, parent_category_id or None)
                category.parent_category_id = parent_category_id or None
            category.updated_at = utc_now()
            self._replace(CATEGORIES, category.to_document())
            self._flush()
        return category

    def _descendant_category_ids(self, category_id: str) -> List[str]:
        result = [category_id]
        frontier = [category_id]
        while frontier:
            parent_id = frontier.pop()
            for doc in self._collections[CATEGORIES]:
                if doc.get('parentCategoryId') == parent_id and doc['id'] not in result:
                    result.append(doc['id'])
                    frontier.append(doc['id'])
        return result

    def delete_category(self, category_id: str) -> int:
        """
        Deletes a category, its descendant categories and every key filed under them.

        Returns:
            int: The number of translation keys removed.
        """
        with self._lock:
            self.get_category(category_id)
            doomed = set(self._descendant_category_ids(category_id))
            before = len(self._collections[TRANSLATION_KEYS])
            self._collections[TRANSLATION_KEYS] = [
                doc for doc in self._collections[TRANSLATION_KEYS] if doc.get('categoryId') not in doomed
            ]
            self._collections[CATEGORIES] = [
                doc for doc in self._collections[CATEGORIES] if doc.get('id') not in doomed
            ]
            removed = before - len(self._collections[TRANSLATION_KEYS])
            self._flush()
        logger.info("Deleted %d categor(ies) and %d translation key(s).", len(doomed), removed)
        return removed

    # --- translation keys ------------------------------------------------

    def check_key_available(self, project_id: str, key: str, ignore_key_id: Optional[str] = None) -> None:
        """
        Rejects malformed keys, exact duplicates, and keys that would collide with an
        existing key when nested on export (one being a strict dot-prefix of the other).
        """
        split_key_path(key)
        with self._lock:
            for doc in self._collections[TRANSLATION_KEYS]:
                if doc.get('projectId') != project_id or doc.get('id') == ignore_key_id:
                    continue
                existing = doc.get('key') or ''
                if existing == key:
                    raise SchemaConflictError(f"Translation key '{key}' already exists in this project.")
                if paths_collide(existing, key):
                    raise SchemaConflictError(
                        f"Translation key '{key}' conflicts with existing key '{existing}': "
                        f"a key cannot be both a value and a group of nested keys."
                    )

    def add_key(self, project_id: str, category_id: str, key: str, value_type: ValueType,
                values: List[TranslationValue], description: str = "") -> TranslationKey:
        with self._lock:
            project = self.get_project(project_id)
            category = self.get_category(category_id)
            if category.project_id != project_id:
                raise InvalidArgumentError("Category belongs to a different project.")
            self.check_key_available(project_id, key)
            validate_key_values(project, value_type, values)
            translation_key = TranslationKey(
                id=new_id(),
                project_id=project_id,
                category_id=category_id,
                key=key,
                value_type=value_type,
                values=list(values),
                description=description or "",
            )
            self._collections[TRANSLATION_KEYS].append(translation_key.to_document())
            self._flush()
        return translation_key

    def get_key(self, key_id: str) -> TranslationKey:
        with self._lock:
            doc = self._find(TRANSLATION_KEYS, key_id)
        if doc is None:
            raise NotFoundError("Translation key not found")
        return TranslationKey.from_document(doc)

    def list_keys(self, project_id: str, category_id: Optional[str] = None) -> List[TranslationKey]:
        """Keys of a project in creation order, optionally restricted to one category."""
        with self._lock:
            return [
                TranslationKey.from_document(doc)
                for doc in self._collections[TRANSLATION_KEYS]
                if doc.get('projectId') == project_id
                and (category_id is None or doc.get('categoryId') == category_id)
            ]

    def replace_key(self, translation_key: TranslationKey,
                    expected_updated_at: Optional[str] = None) -> TranslationKey:
        """
        Persists an edited key in place, keeping its position in creation order.

        With ``expected_updated_at`` the write only happens if the stored key still
        carries that timestamp; otherwise ``StaleWriteError`` is raised.
        """
        with self._lock:
            stored = self.get_key(translation_key.id)
            if expected_updated_at is not None and stored.updated_at != expected_updated_at:
                raise StaleWriteError(f"Translation key '{stored.key}' was modified concurrently.")
            project = self.get_project(translation_key.project_id)
            category = self.get_category(translation_key.category_id)
            if category.project_id != project.id:
                raise InvalidArgumentError("Category belongs to a different project.")
            self.check_key_available(project.id, translation_key.key, ignore_key_id=translation_key.id)
            validate_key_values(project, translation_key.value_type, translation_key.values)
            translation_key.updated_at = utc_now()
            self._replace(TRANSLATION_KEYS, translation_key.to_document())
            self._flush()
        return translation_key

    def delete_key(self, key_id: str) -> None:
        with self._lock:
            self.get_key(key_id)
            self._collections[TRANSLATION_KEYS] = [
                doc for doc in self._collections[TRANSLATION_KEYS] if doc.get('id') != key_id
            ]
            self._flush()
