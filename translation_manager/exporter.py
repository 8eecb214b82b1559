"""
Export a project's translations as nested JSON.

Keys are read in creation order, one value per language is normalised by its
value type and folded into a tree by ``PathMerger``. The result is either one
JSON document keyed by language, or a ZIP archive holding one ``<lang>.json``
per language.
"""
import io
import json
import logging
import re
import zipfile
from dataclasses import dataclass
from datetime import date
from typing import Any, Dict, List, Optional

from translation_manager.errors import InvalidArgumentError
from translation_manager.key_store import KeyStore
from translation_manager.models import Project, TranslationKey, TranslationValue, ValueType
from translation_manager.path_merger import PathMerger

logger = logging.getLogger(__name__)

JSON_MEDIA_TYPE = 'application/json'
ZIP_MEDIA_TYPE = 'application/zip'
# Fixed member timestamp so that identical data produces identical archives.
ZIP_MEMBER_DATE_TIME = (1980, 1, 1, 0, 0, 0)


@dataclass
class ExportResult:
    content: bytes
    media_type: str
    filename: str


def normalize_export_value(key: str, entry: TranslationValue) -> Any:
    """
    Undo storage artifacts before a value is written to an export.

    Text values lose a leading and a trailing double quote and have escaped quotes
    unescaped. Object and array values stored as JSON strings are parsed; if parsing
    fails the raw string is kept and a warning is logged.
    """
    value = entry.value
    if entry.value_type is ValueType.TEXT:
        if isinstance(value, str):
            value = re.sub(r'\A"|"\Z', '', value)
            value = value.replace('\\"', '"')
        return value

    if isinstance(value, str):
        try:
            return json.loads(value)
        except json.JSONDecodeError:
            logger.warning(
                "SerializationFallback: could not parse %s value of key '%s' (%s); exporting the raw string.",
                entry.value_type.value, key, entry.language,
            )
    return value


def build_language_tree(keys: List[TranslationKey], language: str) -> Dict[str, Any]:
    """Merge every key's value for ``language`` into one nested tree; keys without one are skipped."""
    merger = PathMerger()
    for translation_key in keys:
        entry = translation_key.value_for(language)
        if entry is None:
            continue
        merger.merge(translation_key.key, normalize_export_value(translation_key.key, entry))
    return merger.tree


def serialize_document(document: Dict[str, Any]) -> bytes:
    return json.dumps(document, ensure_ascii=False, indent=2).encode('utf-8')


def export_filename(project_name: str, extension: str, export_date: Optional[date] = None) -> str:
    export_date = export_date or date.today()
    return f"translations-{project_name}-{export_date.isoformat()}.{extension}"


class Exporter:
    """Read-only view over a ``KeyStore`` that renders translation exports."""

    def __init__(self, store: KeyStore):
        self.store = store

    def _target_languages(self, project: Project, language: Optional[str]) -> List[str]:
        if not language:
            return list(project.languages)
        if language not in project.languages:
            raise InvalidArgumentError(
                f"Language '{language}' is not configured for project '{project.name}'."
            )
        return [language]

    def build_combined_document(self, project_id: str, language: Optional[str] = None) -> Dict[str, Any]:
        """``{language: tree}`` for the requested language, or for every project language."""
        project = self.store.get_project(project_id)
        languages = self._target_languages(project, language)
        keys = self.store.list_keys(project.id)
        return {lang: build_language_tree(keys, lang) for lang in languages}

    def export(self, project_id: str, language: Optional[str] = None, multi_file: bool = False,
               export_date: Optional[date] = None) -> ExportResult:
        """
        Render an export of a project's translations.

        Args:
            project_id: The project to export.
            language: Restrict the export to this language; must be a project language.
            multi_file: Produce a ZIP archive with one ``<lang>.json`` per language instead
                of a single combined JSON document.
            export_date: Date used in the download filename; today when omitted.

        Returns:
            ExportResult: The payload, its media type and a download filename.

        Raises:
            NotFoundError: If the project does not exist.
            InvalidArgumentError: If ``language`` is not one of the project's languages.
            SchemaConflictError: If two keys collide when nested.
        """
        project = self.store.get_project(project_id)
        documents = self.build_combined_document(project.id, language)

        if not multi_file:
            content = serialize_document(documents)
            logger.info("Exported %d language(s) of project '%s' as JSON.", len(documents), project.name)
            return ExportResult(content, JSON_MEDIA_TYPE, export_filename(project.name, 'json', export_date))

        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, 'w', compression=zipfile.ZIP_DEFLATED) as archive:
            for lang, tree in documents.items():
                member = zipfile.ZipInfo(f"{lang}.json", date_time=ZIP_MEMBER_DATE_TIME)
                member.compress_type = zipfile.ZIP_DEFLATED
                archive.writestr(member, serialize_document(tree))
        logger.info("Exported %d language file(s) of project '%s' as ZIP.", len(documents), project.name)
        return ExportResult(buffer.getvalue(), ZIP_MEDIA_TYPE, export_filename(project.name, 'zip', export_date))
