"""
Base for request bodies that accept legacy alias field names.

Clients send the same field under several names (camelCase, older
snake_case spellings). Aliases are folded onto one canonical field before
validation; unknown fields are rejected.
"""

from typing import Any, ClassVar

from pydantic import BaseModel, ConfigDict, model_validator


class NormalizedRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    field_aliases: ClassVar[dict[str, str]] = {}
    # Fields a client may never write through this body
    forbidden_fields: ClassVar[frozenset[str]] = frozenset()

    @model_validator(mode="before")
    @classmethod
    def normalize_aliases(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data

        normalized: dict[str, Any] = {}
        for key, value in data.items():
            canonical = cls.field_aliases.get(key, key)
            if canonical in cls.forbidden_fields:
                raise ValueError(f"'{key}' can only be changed through its lifecycle operation")
            if canonical in normalized and normalized[canonical] != value:
                raise ValueError(f"Conflicting values supplied for '{canonical}'")
            normalized[canonical] = value
        return cls.combine_fields(normalized)

    @classmethod
    def combine_fields(cls, data: dict[str, Any]) -> dict[str, Any]:
        """Hook for bodies that build one field out of several inputs."""
        return data
