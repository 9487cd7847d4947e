"""
Schema (data model) API router
"""
from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from metaplatform.database import get_db
from metaplatform.schemas.schema import (
    RelationshipResponse,
    SchemaCreate,
    SchemaResponse,
    SchemaUpdate,
)
from metaplatform.services.schema_service import SchemaService


router = APIRouter()


@router.get("", response_model=List[SchemaResponse])
async def list_schemas(
    user_id: UUID = Query(..., description="Owner"),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    db: Session = Depends(get_db),
):
    return SchemaService(db).list_schemas(user_id, skip=skip, limit=limit)


@router.post("", response_model=SchemaResponse, status_code=status.HTTP_201_CREATED)
async def create_schema(
    request: SchemaCreate,
    db: Session = Depends(get_db),
):
    """
    Create a schema

    Field definitions are validated; relationships listed in the request are
    created with the new schema as their source.
    """
    return SchemaService(db).create_schema(
        user_id=request.user_id,
        name=request.name,
        definition=request.definition,
        display_name=request.display_name,
        description=request.description,
        relationships=[rel.model_dump() for rel in request.relationships],
    )


@router.get("/{schema_id}", response_model=SchemaResponse)
async def get_schema(
    schema_id: UUID,
    user_id: UUID = Query(...),
    db: Session = Depends(get_db),
):
    return SchemaService(db).get_schema(schema_id, user_id)


@router.put("/{schema_id}", response_model=SchemaResponse)
async def update_schema(
    schema_id: UUID,
    request: SchemaUpdate,
    user_id: UUID = Query(...),
    db: Session = Depends(get_db),
):
    return SchemaService(db).update_schema(
        schema_id, user_id, request.model_dump(exclude_unset=True)
    )


@router.delete("/{schema_id}")
async def delete_schema(
    schema_id: UUID,
    user_id: UUID = Query(...),
    db: Session = Depends(get_db),
):
    """Delete a schema together with its entities"""
    SchemaService(db).delete_schema(schema_id, user_id)
    return {"message": "Schema deleted successfully"}


@router.get("/{schema_id}/relationships", response_model=List[RelationshipResponse])
async def list_schema_relationships(
    schema_id: UUID,
    user_id: UUID = Query(...),
    db: Session = Depends(get_db),
):
    """Relationships where the schema is the source or the target"""
    service = SchemaService(db)
    service.get_schema(schema_id, user_id)
    return service.list_relationships(user_id, schema_id=schema_id)
