"""
Entity service
Validation of entity data against user-defined schemas and owner-scoped entity CRUD
"""
import logging
import math
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from metaplatform.models import Entity, Schema, User
from metaplatform.repositories import BaseRepository
from metaplatform.utils.errors import NotFoundError, ValidationError

logger = logging.getLogger(__name__)

FIELD_TYPES = ("string", "number", "boolean", "date", "array", "object")


@dataclass
class ValidationResult:
    is_valid: bool
    errors: List[str] = field(default_factory=list)
    validated_data: Dict[str, Any] = field(default_factory=dict)


def _is_valid_date(value: Any) -> bool:
    if isinstance(value, (date, datetime)):
        return True
    if not isinstance(value, str):
        return False
    try:
        datetime.fromisoformat(value.replace("Z", "+00:00"))
        return True
    except ValueError:
        return False


def _matches_type(value: Any, field_type: str) -> bool:
    if field_type == "string":
        return isinstance(value, str)
    if field_type == "number":
        return isinstance(value, (int, float)) and not isinstance(value, bool) and not (
            isinstance(value, float) and math.isnan(value)
        )
    if field_type == "boolean":
        return isinstance(value, bool)
    if field_type == "date":
        return _is_valid_date(value)
    if field_type == "array":
        return isinstance(value, list)
    if field_type == "object":
        return isinstance(value, dict)
    return False


def validate_entity_data(data: Dict[str, Any], schema: Dict[str, Any]) -> ValidationResult:
    """
    Validate entity data against a schema definition

    Fields are required unless `required` is explicitly false. A required
    field is missing when absent, None or an empty string. Undeclared keys
    are dropped from the validated data.

    Args:
        data: submitted entity data
        schema: schema definition ({"fields": [...]})

    Returns:
        ValidationResult
    """
    fields = schema.get("fields") if isinstance(schema, dict) else None
    if not isinstance(fields, list):
        return ValidationResult(is_valid=False, errors=["Invalid schema: missing fields"])

    data = data or {}
    errors: List[str] = []
    validated: Dict[str, Any] = {}

    for field_def in fields:
        name = field_def.get("name")
        field_type = str(field_def.get("type", "")).lower()
        required = field_def.get("required", True) is not False
        value = data.get(name)

        if value is None or value == "":
            if required:
                errors.append(f"Required field '{name}' is missing")
            continue

        if field_type not in FIELD_TYPES:
            errors.append(f"Unknown field type '{field_def.get('type')}' for field '{name}'")
            continue

        if not _matches_type(value, field_type):
            errors.append(f"Field '{name}' must be of type {field_type}")
            continue

        validated[name] = value

    return ValidationResult(is_valid=not errors, errors=errors, validated_data=validated)


def validate_schema_definition(schema: Dict[str, Any]) -> List[str]:
    """
    Check a schema definition before it is stored

    Returns:
        List of problems; empty when the definition is usable
    """
    fields = schema.get("fields") if isinstance(schema, dict) else None
    if not isinstance(fields, list):
        return ["Schema must define a 'fields' list"]

    errors = []
    seen = set()
    for index, field_def in enumerate(fields):
        if not isinstance(field_def, dict):
            errors.append(f"Field #{index + 1} must be an object")
            continue
        name = field_def.get("name")
        if not isinstance(name, str) or not name.strip():
            errors.append(f"Field #{index + 1} is missing a name")
            continue
        if name in seen:
            errors.append(f"Duplicate field name '{name}'")
        seen.add(name)
        field_type = str(field_def.get("type", "")).lower()
        if field_type not in FIELD_TYPES:
            errors.append(f"Unknown field type '{field_def.get('type')}' for field '{name}'")
    return errors


def build_schema_definition(fields: List[Dict[str, Any]]) -> Dict[str, Any]:
    """Normalize a field list into a stored schema definition"""
    normalized = []
    for field_def in fields:
        item = {
            "name": field_def["name"].strip(),
            "type": str(field_def.get("type", "string")).lower(),
            "required": field_def.get("required", True) is not False,
        }
        if field_def.get("description"):
            item["description"] = field_def["description"]
        normalized.append(item)
    return {"fields": normalized}


class EntityService:
    """Owner-scoped entity CRUD"""

    def __init__(self, db: Session):
        self.db = db
        self.entities = BaseRepository(db, Entity)
        self.schemas = BaseRepository(db, Schema)
        self.users = BaseRepository(db, User)

    def _validated(self, schema: Schema, data: Dict[str, Any]) -> Dict[str, Any]:
        result = validate_entity_data(data, schema.definition or {})
        if not result.is_valid:
            raise ValidationError("Entity data validation failed", details=result.errors)
        return result.validated_data

    def create_entity(
        self,
        user_id: UUID,
        schema_id: UUID,
        name: str,
        data: Dict[str, Any],
        display_name: Optional[str] = None,
    ) -> Entity:
        if not self.users.get_by_id(user_id):
            raise NotFoundError("User not found")
        schema = self.schemas.get_owned(schema_id, user_id)
        if not schema:
            raise NotFoundError("Schema not found")

        entity = Entity(
            name=name,
            display_name=display_name or name,
            data=self._validated(schema, data),
            schema_id=schema.id,
            user_id=user_id,
        )
        self.entities.create(entity)
        self.db.commit()
        self.db.refresh(entity)
        logger.info(f"Created entity {entity.id} for schema {schema.name}")
        return entity

    def list_entities(
        self,
        user_id: UUID,
        schema_id: Optional[UUID] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> List[Entity]:
        query = self.db.query(Entity).filter(Entity.user_id == user_id)
        if schema_id:
            query = query.filter(Entity.schema_id == schema_id)
        return query.order_by(Entity.created_at.desc()).offset(skip).limit(limit).all()

    def get_entity(self, entity_id: UUID, user_id: UUID) -> Entity:
        entity = self.entities.get_owned(entity_id, user_id)
        if not entity:
            raise NotFoundError("Entity not found")
        return entity

    def update_entity(
        self,
        entity_id: UUID,
        user_id: UUID,
        name: Optional[str] = None,
        display_name: Optional[str] = None,
        data: Optional[Dict[str, Any]] = None,
    ) -> Entity:
        entity = self.get_entity(entity_id, user_id)
        if name is not None:
            entity.name = name
        if display_name is not None:
            entity.display_name = display_name
        if data is not None:
            entity.data = self._validated(entity.schema, data)

        self.entities.update(entity)
        self.db.commit()
        self.db.refresh(entity)
        return entity

    def delete_entity(self, entity_id: UUID, user_id: UUID) -> None:
        entity = self.get_entity(entity_id, user_id)
        self.entities.delete(entity)
        self.db.commit()
        logger.info(f"Deleted entity {entity_id}")

    def validate_for_schema(self, schema_id: UUID, data: Dict[str, Any]) -> ValidationResult:
        schema = self.schemas.get_by_id(schema_id)
        if not schema:
            raise NotFoundError("Schema not found")
        return validate_entity_data(data, schema.definition or {})
