"""
Feature API router
"""
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from metaplatform.database import get_db
from metaplatform.models import Feature, User
from metaplatform.repositories import BaseRepository
from metaplatform.schemas.application import FeatureCreate, FeatureResponse, FeatureUpdate
from metaplatform.utils.errors import NotFoundError

router = APIRouter()


def _get_feature(db: Session, feature_id: UUID, user_id: UUID) -> Feature:
    feature = BaseRepository(db, Feature).get_owned(feature_id, user_id)
    if not feature:
        raise NotFoundError("Feature not found")
    return feature


@router.get("", response_model=List[FeatureResponse])
async def list_features(
    user_id: UUID = Query(...),
    status_filter: Optional[str] = Query(None, alias="status"),
    db: Session = Depends(get_db),
):
    query = db.query(Feature).filter(Feature.user_id == user_id)
    if status_filter:
        query = query.filter(Feature.status == status_filter)
    return query.order_by(Feature.created_at.desc()).all()


@router.post("", response_model=FeatureResponse, status_code=status.HTTP_201_CREATED)
async def create_feature(
    request: FeatureCreate,
    db: Session = Depends(get_db),
):
    if not BaseRepository(db, User).get_by_id(request.user_id):
        raise NotFoundError("User not found")

    data = request.model_dump()
    data["display_name"] = data["display_name"] or data["name"]
    feature = Feature(**data)
    db.add(feature)
    db.commit()
    db.refresh(feature)
    return feature


@router.get("/{feature_id}", response_model=FeatureResponse)
async def get_feature(
    feature_id: UUID,
    user_id: UUID = Query(...),
    db: Session = Depends(get_db),
):
    return _get_feature(db, feature_id, user_id)


@router.put("/{feature_id}", response_model=FeatureResponse)
async def update_feature(
    feature_id: UUID,
    request: FeatureUpdate,
    user_id: UUID = Query(...),
    db: Session = Depends(get_db),
):
    feature = _get_feature(db, feature_id, user_id)
    for key, value in request.model_dump(exclude_unset=True).items():
        if value is not None:
            setattr(feature, key, value)
    db.commit()
    db.refresh(feature)
    return feature


@router.delete("/{feature_id}")
async def delete_feature(
    feature_id: UUID,
    user_id: UUID = Query(...),
    db: Session = Depends(get_db),
):
    feature = _get_feature(db, feature_id, user_id)
    db.delete(feature)
    db.commit()
    return {"message": "Feature deleted successfully"}
