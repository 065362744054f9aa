from __future__ import annotations

from enum import Enum
from typing import Any, ClassVar, Dict, Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict


class DBSerializableModel(BaseModel):
    """
    Base Pydantic model that knows how to:
    - Serialize itself for DB persistence (aliased field names, JSON-safe values)
    - Describe its stored shape and unique keys for the schema generator

    Documents keep the field names of the existing deployment (`createdBy`,
    `lastCreditTime`, ...), so every aliased field is stored under its alias
    while Python code uses the snake_case attribute.
    """

    model_config = ConfigDict(populate_by_name=True)

    # Logical collection name; subclasses must override
    collection_name: ClassVar[str]

    primary_key: ClassVar[Optional[str]] = "id"

    # Fields carrying a unique index within the collection
    unique_fields: ClassVar[Tuple[str, ...]] = ()

    def serialize_for_db(self) -> Dict[str, Any]:
        """
        Convert to a dict suitable for DB persistence.

        This is the single place to control how models are stored;
        DB adapters can still post-process this if needed.
        """
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")

    @classmethod
    def db_schema(cls) -> Dict[str, Any]:
        """
        Return a backend-agnostic schema description derived from model fields.
        """
        fields: Mapping[str, Any] = cls.model_fields

        properties: Dict[str, Any] = {}
        required: list[str] = []

        for name, field in fields.items():
            stored_name = field.alias or name
            default = field.default if field.default_factory is None else None
            if isinstance(default, Enum):
                default = default.value

            properties[stored_name] = {
                "type": cls._map_type(field.annotation),
                "nullable": not field.is_required(),
                "default": default,
                "description": field.description,
            }

            if field.is_required():
                required.append(stored_name)

        return {
            "collection_name": cls.collection_name,
            "primary_key": cls.primary_key,
            "properties": properties,
            "required": required,
            "unique": list(cls.unique_fields),
        }

    @staticmethod
    def _map_type(annotation: Any) -> str:
        """
        Map a Python / Pydantic type annotation to a generic logical type.
        """
        origin: Any = getattr(annotation, "__origin__", None)
        if origin is list or origin is tuple or origin is set:
            return "array"
        if origin is dict:
            return "object"

        # Optional[X] and other unions collapse to their first concrete member
        args = getattr(annotation, "__args__", None)
        if args and type(None) in args:
            concrete = [a for a in args if a is not type(None)]
            if concrete:
                return DBSerializableModel._map_type(concrete[0])

        if isinstance(annotation, type) and issubclass(annotation, Enum):
            return "string"
        if annotation in (bool,):
            return "boolean"
        if annotation in (int,):
            return "integer"
        if annotation in (float,):
            return "number"
        if annotation in (str,):
            return "string"

        name = getattr(annotation, "__name__", "object")
        return name.lower()
