"""
Application API router
CRUD plus build requests; builds run in the worker process
"""
import logging
from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from metaplatform.database import get_db
from metaplatform.models import Application, Component, Feature, Schema, User
from metaplatform.repositories import BaseRepository
from metaplatform.schemas.application import (
    ApplicationCreate,
    ApplicationResponse,
    ApplicationUpdate,
    BuildRequestResponse,
)
from metaplatform.services.build_service import BuildService
from metaplatform.utils.decorators import handle_service_errors
from metaplatform.utils.errors import ConflictError, NotFoundError

logger = logging.getLogger(__name__)

router = APIRouter()


def _get_application(db: Session, application_id: UUID, user_id: UUID) -> Application:
    application = BaseRepository(db, Application).get_owned(application_id, user_id)
    if not application:
        raise NotFoundError("Application not found")
    return application


def _owned_features(db: Session, user_id: UUID, feature_ids: List[UUID]) -> List[Feature]:
    if not feature_ids:
        return []
    features = db.query(Feature).filter(
        Feature.id.in_(feature_ids),
        Feature.user_id == user_id,
    ).all()
    missing = set(feature_ids) - {feature.id for feature in features}
    if missing:
        raise NotFoundError(f"Feature not found: {', '.join(str(m) for m in sorted(missing, key=str))}")
    return features


def _check_schema(db: Session, schema_id: UUID, user_id: UUID) -> None:
    if schema_id and not BaseRepository(db, Schema).get_owned(schema_id, user_id):
        raise NotFoundError("Schema not found")


@router.get("", response_model=List[ApplicationResponse])
async def list_applications(
    user_id: UUID = Query(...),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    db: Session = Depends(get_db),
):
    return BaseRepository(db, Application).list_owned(user_id, skip=skip, limit=limit)


@router.post("", response_model=ApplicationResponse, status_code=status.HTTP_201_CREATED)
@handle_service_errors(resource="application", operation="create")
async def create_application(
    request: ApplicationCreate,
    db: Session = Depends(get_db),
):
    """
    Create an application in status "draft"

    The name doubles as the build directory and Docker image name, so it is
    unique per user.
    """
    if not BaseRepository(db, User).get_by_id(request.user_id):
        raise NotFoundError("User not found")
    duplicate = db.query(Application).filter(
        Application.user_id == request.user_id,
        Application.name == request.name,
    ).first()
    if duplicate:
        raise ConflictError(f"Application already exists: {request.name}")
    _check_schema(db, request.schema_id, request.user_id)

    application = Application(
        name=request.name,
        display_name=request.display_name or request.name,
        description=request.description,
        config=request.config,
        schema_id=request.schema_id,
        user_id=request.user_id,
    )
    application.features = _owned_features(db, request.user_id, request.feature_ids)
    for component in request.components:
        application.components.append(Component(**component.model_dump()))

    db.add(application)
    db.commit()
    db.refresh(application)

    logger.info(f"Created application {application.name} ({application.id})")
    return application


@router.get("/{application_id}", response_model=ApplicationResponse)
async def get_application(
    application_id: UUID,
    user_id: UUID = Query(...),
    db: Session = Depends(get_db),
):
    return _get_application(db, application_id, user_id)


@router.put("/{application_id}", response_model=ApplicationResponse)
async def update_application(
    application_id: UUID,
    request: ApplicationUpdate,
    user_id: UUID = Query(...),
    db: Session = Depends(get_db),
):
    application = _get_application(db, application_id, user_id)
    changes = request.model_dump(exclude_unset=True)

    if "schema_id" in changes:
        _check_schema(db, changes["schema_id"], user_id)
        application.schema_id = changes["schema_id"]
    if changes.get("feature_ids") is not None:
        application.features = _owned_features(db, user_id, changes["feature_ids"])
    for key in ("display_name", "description", "config"):
        if changes.get(key) is not None:
            setattr(application, key, changes[key])

    db.commit()
    db.refresh(application)
    return application


@router.delete("/{application_id}")
async def delete_application(
    application_id: UUID,
    user_id: UUID = Query(...),
    db: Session = Depends(get_db),
):
    application = _get_application(db, application_id, user_id)
    db.delete(application)
    db.commit()
    return {"message": "Application deleted successfully"}


@router.post(
    "/{application_id}/build",
    response_model=BuildRequestResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def build_application(
    application_id: UUID,
    user_id: UUID = Query(...),
    db: Session = Depends(get_db),
):
    """
    Queue a build

    The worker renders the React sources, runs docker build and moves the
    application to "built" or "failed". Poll GET /{id} for the outcome.
    """
    application = _get_application(db, application_id, user_id)
    if application.status == "building":
        raise ConflictError("Application is already building")

    BuildService.request_build(application)
    return BuildRequestResponse(
        application_id=application.id,
        status=application.status,
        queued=True,
    )
