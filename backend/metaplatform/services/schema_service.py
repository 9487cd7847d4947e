"""
Schema service
User-defined data models and the relationships between them
"""
import logging
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy import or_
from sqlalchemy.orm import Session

from metaplatform.models import Relationship, Schema, User
from metaplatform.repositories import BaseRepository
from metaplatform.services.entity_service import (
    build_schema_definition,
    validate_schema_definition,
)
from metaplatform.utils.errors import NotFoundError, ValidationError

logger = logging.getLogger(__name__)

RELATIONSHIP_FIELDS = (
    "name", "display_name", "type", "source_field", "target_field",
    "cascade", "nullable", "description",
)


class SchemaService:

    def __init__(self, db: Session):
        self.db = db
        self.schemas = BaseRepository(db, Schema)
        self.relationships = BaseRepository(db, Relationship)
        self.users = BaseRepository(db, User)

    def _checked_definition(self, definition: Dict[str, Any]) -> Dict[str, Any]:
        errors = validate_schema_definition(definition)
        if errors:
            raise ValidationError("Invalid schema definition", details=errors)
        return build_schema_definition(definition["fields"])

    def list_schemas(self, user_id: UUID, skip: int = 0, limit: int = 100) -> List[Schema]:
        return self.schemas.list_owned(user_id, skip=skip, limit=limit)

    def get_schema(self, schema_id: UUID, user_id: UUID) -> Schema:
        schema = self.schemas.get_owned(schema_id, user_id)
        if not schema:
            raise NotFoundError("Schema not found")
        return schema

    def create_schema(
        self,
        user_id: UUID,
        name: str,
        definition: Dict[str, Any],
        display_name: Optional[str] = None,
        description: Optional[str] = None,
        relationships: Optional[List[Dict[str, Any]]] = None,
    ) -> Schema:
        """Create a schema, optionally with relationships originating from it"""
        if not self.users.get_by_id(user_id):
            raise NotFoundError("User not found")

        schema = Schema(
            name=name,
            display_name=display_name or name,
            description=description,
            definition=self._checked_definition(definition),
            user_id=user_id,
        )
        self.schemas.create(schema)

        for rel in relationships or []:
            self._add_relationship(user_id, schema.id, rel)

        self.db.commit()
        self.db.refresh(schema)
        logger.info(f"Created schema {schema.name} ({schema.id})")
        return schema

    def update_schema(self, schema_id: UUID, user_id: UUID, changes: Dict[str, Any]) -> Schema:
        schema = self.get_schema(schema_id, user_id)
        for key in ("name", "display_name", "description", "is_active"):
            if changes.get(key) is not None:
                setattr(schema, key, changes[key])
        if changes.get("definition") is not None:
            schema.definition = self._checked_definition(changes["definition"])

        self.schemas.update(schema)
        self.db.commit()
        self.db.refresh(schema)
        return schema

    def delete_schema(self, schema_id: UUID, user_id: UUID) -> None:
        schema = self.get_schema(schema_id, user_id)
        self.schemas.delete(schema)
        self.db.commit()
        logger.info(f"Deleted schema {schema_id}")

    # ========== Relationships ==========

    def _add_relationship(self, user_id: UUID, source_schema_id: UUID, data: Dict[str, Any]) -> Relationship:
        target_id = data.get("target_schema_id")
        if not self.schemas.get_owned(target_id, user_id):
            raise NotFoundError(f"Target schema not found: {target_id}")

        relationship = Relationship(
            source_schema_id=source_schema_id,
            target_schema_id=target_id,
            user_id=user_id,
        )
        for key in RELATIONSHIP_FIELDS:
            if data.get(key) is not None:
                setattr(relationship, key, data[key])
        if not relationship.display_name:
            relationship.display_name = relationship.name
        return self.relationships.create(relationship)

    def create_relationship(self, user_id: UUID, data: Dict[str, Any]) -> Relationship:
        source = self.get_schema(data["source_schema_id"], user_id)
        relationship = self._add_relationship(user_id, source.id, data)
        self.db.commit()
        self.db.refresh(relationship)
        return relationship

    def list_relationships(self, user_id: UUID, schema_id: Optional[UUID] = None) -> List[Relationship]:
        query = self.db.query(Relationship).filter(Relationship.user_id == user_id)
        if schema_id:
            query = query.filter(
                or_(
                    Relationship.source_schema_id == schema_id,
                    Relationship.target_schema_id == schema_id,
                )
            )
        return query.order_by(Relationship.created_at).all()

    def get_relationship(self, relationship_id: UUID, user_id: UUID) -> Relationship:
        relationship = self.relationships.get_owned(relationship_id, user_id)
        if not relationship:
            raise NotFoundError("Relationship not found")
        return relationship

    def update_relationship(self, relationship_id: UUID, user_id: UUID, changes: Dict[str, Any]) -> Relationship:
        relationship = self.get_relationship(relationship_id, user_id)
        for key in RELATIONSHIP_FIELDS:
            if changes.get(key) is not None:
                setattr(relationship, key, changes[key])
        self.relationships.update(relationship)
        self.db.commit()
        self.db.refresh(relationship)
        return relationship

    def delete_relationship(self, relationship_id: UUID, user_id: UUID) -> None:
        relationship = self.get_relationship(relationship_id, user_id)
        self.relationships.delete(relationship)
        self.db.commit()
