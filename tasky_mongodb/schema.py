# schema.py
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Mapping, Optional, Tuple, Union

from .errors import InvalidSpecError


class FieldType(str, Enum):
    """BSON type aliases accepted by ``$jsonSchema``."""

    STRING = "string"
    BOOLEAN = "bool"
    OBJECT_ID = "objectId"
    INT = "int"
    DOUBLE = "double"
    DATE = "date"


# A tag read back from the server may be a type we don't model, or a list of them.
TypeTag = Union[FieldType, str, Tuple[str, ...]]

_OBJECT_ID_PATTERN = "^[0-9a-fA-F]{24}$"

_JSON_TYPES = {
    FieldType.STRING: {"type": "string"},
    FieldType.BOOLEAN: {"type": "boolean"},
    FieldType.OBJECT_ID: {"type": "string", "pattern": _OBJECT_ID_PATTERN},
    FieldType.INT: {"type": "integer"},
    FieldType.DOUBLE: {"type": "number"},
    FieldType.DATE: {"type": "string", "format": "date-time"},
}


def _parse_tag(raw) -> TypeTag:
    if isinstance(raw, (list, tuple)):
        return tuple(raw)
    try:
        return FieldType(raw)
    except ValueError:
        return raw


_SUBSCHEMA_MAPS = ("properties", "patternProperties", "dependencies")
_SUBSCHEMA_LISTS = ("allOf", "anyOf", "oneOf")
_SUBSCHEMAS = ("items", "additionalItems", "additionalProperties", "not")


def _normalize_schema(schema):
    """Drop ``description`` annotations and order ``required`` lists."""
    if not isinstance(schema, Mapping):
        return schema
    out = {}
    for key, value in schema.items():
        if key in ("description", "title"):
            continue
        if key == "required" and isinstance(value, list):
            out[key] = sorted(value, key=str)
        elif key in _SUBSCHEMA_MAPS and isinstance(value, Mapping):
            out[key] = {name: _normalize_schema(sub) for name, sub in value.items()}
        elif key in _SUBSCHEMA_LISTS and isinstance(value, list):
            out[key] = [_normalize_schema(sub) for sub in value]
        elif key in _SUBSCHEMAS:
            if isinstance(value, list):
                out[key] = [_normalize_schema(sub) for sub in value]
            else:
                out[key] = _normalize_schema(value)
        else:
            out[key] = value
    return out


def normalize_validator(validator: Optional[Mapping]) -> dict:
    """Canonical form of a collection validator, for comparing two of them.

    Only the ``$jsonSchema`` part is normalized; query-operator clauses next
    to it are kept verbatim.
    """
    out = dict(validator or {})
    if "$jsonSchema" in out:
        out["$jsonSchema"] = _normalize_schema(out["$jsonSchema"])
    return out


@dataclass(frozen=True)
class ValidationRule:
    required: Tuple[str, ...]
    field_types: Dict[str, TypeTag]
    descriptions: Dict[str, str] = field(default_factory=dict, compare=False)

    def to_validator(self) -> dict:
        properties = {}
        for name, tag in self.field_types.items():
            bson_type = list(tag) if isinstance(tag, tuple) else getattr(tag, "value", tag)
            prop = {"bsonType": bson_type}
            if name in self.descriptions:
                prop["description"] = self.descriptions[name]
            properties[name] = prop
        return {
            "$jsonSchema": {
                "bsonType": "object",
                "required": list(self.required),
                "properties": properties,
            }
        }

    @classmethod
    def from_validator(cls, validator: Optional[Mapping]) -> "ValidationRule":
        """Read the required fields and property types of a ``validator`` option.

        Validators written with query operators instead of ``$jsonSchema``
        come back as an empty rule. Keywords other than ``required`` and
        ``bsonType`` are not represented; use ``matches_validator`` to compare.
        """
        schema = (validator or {}).get("$jsonSchema") or {}
        if not isinstance(schema, Mapping):
            raise InvalidSpecError(f"malformed $jsonSchema validator: {schema!r}")
        properties = schema.get("properties") or {}
        required = schema.get("required") or ()
        if not isinstance(properties, Mapping) or not isinstance(required, (list, tuple)):
            raise InvalidSpecError("malformed $jsonSchema validator")
        field_types = {}
        descriptions = {}
        for name, prop in properties.items():
            if not isinstance(prop, Mapping):
                raise InvalidSpecError(f"malformed $jsonSchema property '{name}': {prop!r}")
            field_types[name] = _parse_tag(prop.get("bsonType"))
            if "description" in prop:
                descriptions[name] = prop["description"]
        return cls(
            required=tuple(required),
            field_types=field_types,
            descriptions=descriptions,
        )

    def matches_validator(self, validator: Optional[Mapping]) -> bool:
        # Annotations and the order of required fields don't change what the server accepts.
        return normalize_validator(validator) == normalize_validator(self.to_validator())

    def to_jsonschema(self) -> dict:
        props = {}
        for name, tag in self.field_types.items():
            if isinstance(tag, FieldType):
                props[name] = dict(_JSON_TYPES[tag])
            else:
                props[name] = {}
        return {"type": "object", "required": list(self.required), "properties": props}


@dataclass(frozen=True)
class CollectionSpec:
    name: str
    required_fields: Tuple[str, ...]
    field_types: Mapping[str, FieldType]
    descriptions: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self):
        if not isinstance(self.name, str) or not self.name.strip():
            raise InvalidSpecError("collection name must be a non-empty string")
        try:
            types = {k: FieldType(v) for k, v in self.field_types.items()}
        except ValueError as e:
            raise InvalidSpecError(f"{self.name}: {e}") from e
        required = tuple(self.required_fields)
        missing = [f for f in required if f not in types]
        if missing:
            raise InvalidSpecError(f"{self.name}: required fields without a type: {missing}")
        if len(set(required)) != len(required):
            raise InvalidSpecError(f"{self.name}: required fields repeat")
        stray = [f for f in self.descriptions if f not in types]
        if stray:
            raise InvalidSpecError(f"{self.name}: descriptions for undeclared fields: {stray}")
        object.__setattr__(self, "required_fields", required)
        object.__setattr__(self, "field_types", types)
        object.__setattr__(self, "descriptions", dict(self.descriptions))

    # Specs in one batch are told apart by name, so that is what they hash on.
    def __hash__(self):
        return hash(self.name)

    @property
    def optional_fields(self) -> Tuple[str, ...]:
        return tuple(f for f in self.field_types if f not in self.required_fields)

    def rule(self) -> ValidationRule:
        return ValidationRule(
            required=self.required_fields,
            field_types=dict(self.field_types),
            descriptions=dict(self.descriptions),
        )


USERS_SPEC = CollectionSpec(
    name="users",
    required_fields=("name", "email", "password"),
    field_types={
        "name": FieldType.STRING,
        "email": FieldType.STRING,
        "password": FieldType.STRING,
    },
    descriptions={
        "name": "must be a string and is required",
        "email": "must be a string and is required",
        "password": "must be a string and is required",
    },
)

TASKS_SPEC = CollectionSpec(
    name="tasks",
    required_fields=("title", "userId"),
    field_types={
        "title": FieldType.STRING,
        "description": FieldType.STRING,
        "completed": FieldType.BOOLEAN,
        "userId": FieldType.OBJECT_ID,
    },
    descriptions={
        "title": "must be a string and is required",
        "description": "must be a string",
        "completed": "must be a boolean",
        "userId": "must be an objectId and is required",
    },
)

DEFAULT_SPECS = (USERS_SPEC, TASKS_SPEC)
