"""Records stored by the key store and the value sum type used on the write path."""
import json
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, ClassVar, Dict, Iterator, List, Optional, Union

import jsonschema

from translation_manager.errors import InvalidArgumentError

Scalar = Union[str, int, float, bool, None]
ArrayItem = Union[str, Dict[str, Scalar], Scalar]


class ValueType(str, Enum):
    TEXT = "text"
    OBJECT = "object"
    ARRAY = "array"


_SCALAR_SCHEMA = {"type": ["string", "number", "boolean", "null"]}
_FLAT_OBJECT_SCHEMA = {
    "type": "object",
    "additionalProperties": _SCALAR_SCHEMA,
}

# JSON schemas for the raw payload accepted for each value type.
VALUE_SCHEMAS: Dict[ValueType, Dict[str, Any]] = {
    ValueType.TEXT: {"type": "string"},
    ValueType.OBJECT: _FLAT_OBJECT_SCHEMA,
    ValueType.ARRAY: {
        "type": "array",
        "items": {"anyOf": [_FLAT_OBJECT_SCHEMA, _SCALAR_SCHEMA]},
    },
}


@dataclass(frozen=True)
class TextValue:
    text: str
    value_type: ClassVar[ValueType] = ValueType.TEXT

    def to_raw(self) -> str:
        return self.text


@dataclass(frozen=True)
class ObjectValue:
    entries: Dict[str, Scalar]
    value_type: ClassVar[ValueType] = ValueType.OBJECT

    def to_raw(self) -> Dict[str, Scalar]:
        return dict(self.entries)


@dataclass(frozen=True)
class ArrayValue:
    items: List[ArrayItem]
    value_type: ClassVar[ValueType] = ValueType.ARRAY

    def to_raw(self) -> List[ArrayItem]:
        return [dict(item) if isinstance(item, dict) else item for item in self.items]


Value = Union[TextValue, ObjectValue, ArrayValue]


def coerce_value_type(value_type: Any) -> ValueType:
    """Turn a ``valueType`` tag into a ``ValueType`` or raise ``InvalidArgumentError``."""
    try:
        return ValueType(value_type)
    except ValueError:
        allowed = ", ".join(t.value for t in ValueType)
        raise InvalidArgumentError(f"Unknown valueType '{value_type}'. Expected one of: {allowed}.")


def parse_value(value_type: Any, raw: Any) -> Value:
    """
    Validate a raw payload against the schema of its tag and wrap it in the matching variant.

    Object and array payloads that arrive JSON-encoded as a string are decoded here,
    so that the store only ever holds structured values.

    Args:
        value_type: The ``valueType`` tag (``text``, ``object`` or ``array``).
        raw: The payload as received from a request body or a stored document.

    Returns:
        Value: The typed value.

    Raises:
        InvalidArgumentError: If the tag is unknown or the payload does not match it.
    """
    value_type = coerce_value_type(value_type)

    if value_type is not ValueType.TEXT and isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise InvalidArgumentError(
                f"Value for valueType '{value_type.value}' is a string that is not valid JSON.",
                detail=str(exc),
            ) from exc

    try:
        jsonschema.validate(instance=raw, schema=VALUE_SCHEMAS[value_type])
    except jsonschema.ValidationError as exc:
        raise InvalidArgumentError(
            f"Value does not match valueType '{value_type.value}'.",
            detail=exc.message,
        ) from exc

    if value_type is ValueType.TEXT:
        return TextValue(raw)
    if value_type is ValueType.OBJECT:
        return ObjectValue(dict(raw))
    return ArrayValue(list(raw))


def iter_leaf_strings(value: Value) -> Iterator[str]:
    """Yield every translatable string inside ``value`` in document order."""
    if isinstance(value, TextValue):
        yield value.text
    elif isinstance(value, ObjectValue):
        yield from (v for v in value.entries.values() if isinstance(v, str))
    else:
        for item in value.items:
            if isinstance(item, str):
                yield item
            elif isinstance(item, dict):
                yield from (v for v in item.values() if isinstance(v, str))


def infer_value_type(raw: Any) -> ValueType:
    if isinstance(raw, list):
        return ValueType.ARRAY
    if isinstance(raw, dict):
        return ValueType.OBJECT
    return ValueType.TEXT


def new_id() -> str:
    return uuid.uuid4().hex


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class Project:
    id: str
    name: str
    main_language: str
    languages: List[str]
    description: str = ""
    created_at: str = field(default_factory=utc_now)
    updated_at: str = field(default_factory=utc_now)

    def to_document(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "mainLanguage": self.main_language,
            "languages": list(self.languages),
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "Project":
        return cls(
            id=doc["id"],
            name=doc["name"],
            main_language=doc["mainLanguage"],
            languages=list(doc.get("languages") or [doc["mainLanguage"]]),
            description=doc.get("description") or "",
            created_at=doc.get("createdAt", ""),
            updated_at=doc.get("updatedAt", ""),
        )


@dataclass
class Category:
    id: str
    project_id: str
    name: str
    parent_category_id: Optional[str] = None
    description: str = ""
    created_at: str = field(default_factory=utc_now)
    updated_at: str = field(default_factory=utc_now)

    def to_document(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "projectId": self.project_id,
            "parentCategoryId": self.parent_category_id,
            "name": self.name,
            "description": self.description,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "Category":
        return cls(
            id=doc["id"],
            project_id=doc["projectId"],
            name=doc["name"],
            parent_category_id=doc.get("parentCategoryId"),
            description=doc.get("description") or "",
            created_at=doc.get("createdAt", ""),
            updated_at=doc.get("updatedAt", ""),
        )


@dataclass
class TranslationValue:
    """One language's entry of a translation key, holding the value as persisted."""
    language: str
    value: Any
    value_type: ValueType = ValueType.TEXT

    @classmethod
    def from_value(cls, language: str, value: Value) -> "TranslationValue":
        return cls(language=language, value=value.to_raw(), value_type=value.value_type)

    def to_document(self) -> Dict[str, Any]:
        return {"language": self.language, "value": self.value, "valueType": self.value_type.value}


@dataclass
class TranslationKey:
    id: str
    project_id: str
    category_id: str
    key: str
    value_type: ValueType
    values: List[TranslationValue]
    description: str = ""
    created_at: str = field(default_factory=utc_now)
    updated_at: str = field(default_factory=utc_now)

    def value_for(self, language: str) -> Optional[TranslationValue]:
        for entry in self.values:
            if entry.language == language:
                return entry
        return None

    def to_document(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "projectId": self.project_id,
            "categoryId": self.category_id,
            "key": self.key,
            "description": self.description,
            "valueType": self.value_type.value,
            "values": [entry.to_document() for entry in self.values],
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "TranslationKey":
        raw_values = doc.get("values") or []
        value_type = doc.get("valueType")
        if value_type:
            value_type = coerce_value_type(value_type)
        else:
            # Older documents carry no valueType; infer it from the first stored value.
            first = raw_values[0].get("value") if raw_values else None
            value_type = infer_value_type(first)

        values = [
            TranslationValue(
                language=entry.get("language"),
                value=entry.get("value"),
                value_type=coerce_value_type(entry.get("valueType") or value_type.value),
            )
            for entry in raw_values
        ]
        return cls(
            id=doc["id"],
            project_id=doc["projectId"],
            category_id=doc["categoryId"],
            key=doc.get("key") or doc.get("title") or "",
            value_type=value_type,
            values=values,
            description=doc.get("description") or "",
            created_at=doc.get("createdAt", ""),
            updated_at=doc.get("updatedAt", ""),
        )
