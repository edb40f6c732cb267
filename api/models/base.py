# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Base entity models with common fields and validation.
"""

from datetime import datetime, timezone
from typing import Any, Dict
from pydantic import BaseModel, Field, ConfigDict
from pydantic.alias_generators import to_camel
from bson import ObjectId


def generate_object_id() -> str:
    """Generate a new MongoDB ObjectId as string."""
    return str(ObjectId())


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


class BaseEntity(BaseModel):
    """Base entity with common fields for all domain objects."""

    model_config = ConfigDict(
        # Documents are stored with camelCase keys
        alias_generator=to_camel,
        # Allow population by field name or alias
        populate_by_name=True,
        # Use enum values instead of enum objects
        use_enum_values=True,
        # Validate assignment
        validate_assignment=True
    )

    id: str = Field(default_factory=generate_object_id, description="Unique identifier")
    created_at: datetime = Field(default_factory=utc_now, description="Creation timestamp")
    schema_version: int = Field(default=1, description="Schema version for migrations")

    def to_document(self) -> Dict[str, Any]:
        """Serialize to a storage document keyed by camelCase aliases."""
        return self.model_dump(by_alias=True)

    @classmethod
    def from_document(cls, document: Dict[str, Any]):
        """Build an entity from a storage document."""
        return cls.model_validate(document)


class MutableEntity(BaseEntity):
    """Entity that tracks its last modification time."""

    updated_at: datetime = Field(default_factory=utc_now, description="Last update timestamp")
