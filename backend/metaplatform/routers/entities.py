"""
Entity API router
Rows of user-defined schemas; data is validated against the schema on write
"""
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from metaplatform.database import get_db
from metaplatform.schemas.schema import (
    EntityCreate,
    EntityResponse,
    EntityUpdate,
    EntityValidateRequest,
    ValidationResultResponse,
)
from metaplatform.services.entity_service import EntityService

router = APIRouter()


@router.get("", response_model=List[EntityResponse])
async def list_entities(
    user_id: UUID = Query(...),
    schema_id: Optional[UUID] = Query(None),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    db: Session = Depends(get_db),
):
    return EntityService(db).list_entities(user_id, schema_id=schema_id, skip=skip, limit=limit)


@router.post("", response_model=EntityResponse, status_code=status.HTTP_201_CREATED)
async def create_entity(
    request: EntityCreate,
    db: Session = Depends(get_db),
):
    """
    Create an entity

    Undeclared keys and empty optional fields are dropped; validation errors are returned
    as a 400 with one message per field.
    """
    return EntityService(db).create_entity(
        user_id=request.user_id,
        schema_id=request.schema_id,
        name=request.name,
        data=request.data,
        display_name=request.display_name,
    )


@router.post("/validate", response_model=ValidationResultResponse)
async def validate_entity(
    request: EntityValidateRequest,
    db: Session = Depends(get_db),
):
    """Dry-run validation; nothing is stored"""
    result = EntityService(db).validate_for_schema(request.schema_id, request.data)
    return ValidationResultResponse(
        is_valid=result.is_valid,
        errors=result.errors,
        validated_data=result.validated_data,
    )


@router.get("/{entity_id}", response_model=EntityResponse)
async def get_entity(
    entity_id: UUID,
    user_id: UUID = Query(...),
    db: Session = Depends(get_db),
):
    return EntityService(db).get_entity(entity_id, user_id)


@router.put("/{entity_id}", response_model=EntityResponse)
async def update_entity(
    entity_id: UUID,
    request: EntityUpdate,
    user_id: UUID = Query(...),
    db: Session = Depends(get_db),
):
    return EntityService(db).update_entity(
        entity_id,
        user_id,
        name=request.name,
        display_name=request.display_name,
        data=request.data,
    )


@router.delete("/{entity_id}")
async def delete_entity(
    entity_id: UUID,
    user_id: UUID = Query(...),
    db: Session = Depends(get_db),
):
    EntityService(db).delete_entity(entity_id, user_id)
    return {"message": "Entity deleted successfully"}
