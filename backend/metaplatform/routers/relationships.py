"""
Relationship API router
"""
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from metaplatform.database import get_db
from metaplatform.schemas.schema import (
    RelationshipCreate,
    RelationshipResponse,
    RelationshipUpdate,
)
from metaplatform.services.schema_service import SchemaService

router = APIRouter()


@router.get("", response_model=List[RelationshipResponse])
async def list_relationships(
    user_id: UUID = Query(...),
    schema_id: Optional[UUID] = Query(None, description="Only relationships touching this schema"),
    db: Session = Depends(get_db),
):
    return SchemaService(db).list_relationships(user_id, schema_id=schema_id)


@router.post("", response_model=RelationshipResponse, status_code=status.HTTP_201_CREATED)
async def create_relationship(
    request: RelationshipCreate,
    db: Session = Depends(get_db),
):
    data = request.model_dump()
    user_id = data.pop("user_id")
    return SchemaService(db).create_relationship(user_id, data)


@router.get("/{relationship_id}", response_model=RelationshipResponse)
async def get_relationship(
    relationship_id: UUID,
    user_id: UUID = Query(...),
    db: Session = Depends(get_db),
):
    return SchemaService(db).get_relationship(relationship_id, user_id)


@router.put("/{relationship_id}", response_model=RelationshipResponse)
async def update_relationship(
    relationship_id: UUID,
    request: RelationshipUpdate,
    user_id: UUID = Query(...),
    db: Session = Depends(get_db),
):
    return SchemaService(db).update_relationship(
        relationship_id, user_id, request.model_dump(exclude_unset=True)
    )


@router.delete("/{relationship_id}")
async def delete_relationship(
    relationship_id: UUID,
    user_id: UUID = Query(...),
    db: Session = Depends(get_db),
):
    SchemaService(db).delete_relationship(relationship_id, user_id)
    return {"message": "Relationship deleted successfully"}
