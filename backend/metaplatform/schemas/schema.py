"""
Data model schemas
Request/response bodies for user-defined schemas, their relationships and entities
"""
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional
from uuid import UUID

from pydantic import AliasChoices, BaseModel, Field

RelationshipType = Literal["one-to-one", "one-to-many", "many-to-one", "many-to-many"]


# ========== Relationships ==========


class RelationshipBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    display_name: Optional[str] = None
    type: RelationshipType
    target_schema_id: UUID
    source_field: Optional[str] = None
    target_field: Optional[str] = None
    cascade: bool = False
    nullable: bool = True
    description: Optional[str] = None


class RelationshipInput(RelationshipBase):
    """Relationship declared inline when a schema is created"""


class RelationshipCreate(RelationshipBase):
    user_id: UUID
    source_schema_id: UUID


class RelationshipUpdate(BaseModel):
    name: Optional[str] = None
    display_name: Optional[str] = None
    type: Optional[RelationshipType] = None
    source_field: Optional[str] = None
    target_field: Optional[str] = None
    cascade: Optional[bool] = None
    nullable: Optional[bool] = None
    description: Optional[str] = None


class RelationshipResponse(BaseModel):
    id: UUID
    name: str
    display_name: str
    type: str
    source_schema_id: UUID
    target_schema_id: UUID
    source_field: Optional[str] = None
    target_field: Optional[str] = None
    cascade: bool
    nullable: bool
    description: Optional[str] = None
    user_id: UUID
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


# ========== Schemas ==========


class SchemaCreate(BaseModel):
    user_id: UUID
    name: str = Field(..., min_length=1, max_length=255)
    display_name: Optional[str] = None
    description: Optional[str] = None
    definition: Dict[str, Any] = Field(
        ...,
        validation_alias=AliasChoices("schema", "definition"),
        description='Field list, e.g. {"fields": [{"name": "email", "type": "string"}]}',
    )
    relationships: List[RelationshipInput] = Field(default_factory=list)


class SchemaUpdate(BaseModel):
    name: Optional[str] = None
    display_name: Optional[str] = None
    description: Optional[str] = None
    definition: Optional[Dict[str, Any]] = Field(
        default=None, validation_alias=AliasChoices("schema", "definition")
    )
    is_active: Optional[bool] = None


class SchemaResponse(BaseModel):
    id: UUID
    name: str
    display_name: str
    description: Optional[str] = None
    definition: Dict[str, Any] = Field(
        validation_alias=AliasChoices("definition", "schema"),
        serialization_alias="schema",
    )
    is_system: bool
    is_active: bool
    user_id: UUID
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


# ========== Entities ==========


class EntityCreate(BaseModel):
    user_id: UUID
    schema_id: UUID
    name: str = Field(..., min_length=1, max_length=255)
    display_name: Optional[str] = None
    data: Dict[str, Any] = Field(default_factory=dict)


class EntityUpdate(BaseModel):
    name: Optional[str] = None
    display_name: Optional[str] = None
    data: Optional[Dict[str, Any]] = None


class EntityResponse(BaseModel):
    id: UUID
    name: str
    display_name: str
    data: Dict[str, Any]
    schema_id: UUID
    user_id: UUID
    is_system: bool
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class EntityValidateRequest(BaseModel):
    schema_id: UUID
    data: Dict[str, Any] = Field(default_factory=dict)


class ValidationResultResponse(BaseModel):
    is_valid: bool
    errors: List[str]
    validated_data: Dict[str, Any]
