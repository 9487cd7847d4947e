"""
Workflow API router
Workflows are ordered tool actions run by workflow_action bot tools
"""
import logging
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from metaplatform.database import get_db
from metaplatform.models import Workflow, WorkflowAction
from metaplatform.schemas.workflow import (
    WorkflowActionCreate,
    WorkflowActionResponse,
    WorkflowActionUpdate,
    WorkflowCreate,
    WorkflowResponse,
    WorkflowUpdate,
)
from metaplatform.services.tool_execution_service import validate_tool_config
from metaplatform.utils.errors import NotFoundError

logger = logging.getLogger(__name__)

router = APIRouter()


def _get_workflow(db: Session, workflow_id: UUID) -> Workflow:
    workflow = db.query(Workflow).filter(Workflow.id == workflow_id).first()
    if not workflow:
        raise NotFoundError("Workflow not found")
    return workflow


def _get_action(db: Session, workflow_id: UUID, action_id: UUID) -> WorkflowAction:
    action = db.query(WorkflowAction).filter(
        WorkflowAction.id == action_id,
        WorkflowAction.workflow_id == workflow_id,
    ).first()
    if not action:
        raise NotFoundError("Workflow action not found")
    return action


@router.get("", response_model=List[WorkflowResponse])
async def list_workflows(
    user_id: Optional[UUID] = Query(None, description="Owner filter; omitted lists every workflow"),
    is_active: Optional[bool] = Query(None),
    db: Session = Depends(get_db),
):
    query = db.query(Workflow)
    if user_id:
        query = query.filter(Workflow.user_id == user_id)
    if is_active is not None:
        query = query.filter(Workflow.is_active == is_active)
    return query.order_by(Workflow.created_at.desc()).all()


@router.post("", response_model=WorkflowResponse, status_code=status.HTTP_201_CREATED)
async def create_workflow(
    request: WorkflowCreate,
    db: Session = Depends(get_db),
):
    """Create a workflow with its actions; each action config is validated for its tool type"""
    workflow = Workflow(
        name=request.name,
        display_name=request.display_name or request.name,
        description=request.description,
        config=request.config,
        is_active=request.is_active,
        user_id=request.user_id,
    )
    for action in request.actions:
        validate_tool_config(action.type.value, action.config)
        workflow.actions.append(WorkflowAction(
            name=action.name,
            type=action.type.value,
            config=action.config,
            order=action.order,
            is_active=action.is_active,
        ))

    db.add(workflow)
    db.commit()
    db.refresh(workflow)

    logger.info(f"Created workflow {workflow.name} with {len(workflow.actions)} actions")
    return workflow


@router.get("/{workflow_id}", response_model=WorkflowResponse)
async def get_workflow(
    workflow_id: UUID,
    db: Session = Depends(get_db),
):
    return _get_workflow(db, workflow_id)


@router.put("/{workflow_id}", response_model=WorkflowResponse)
async def update_workflow(
    workflow_id: UUID,
    request: WorkflowUpdate,
    db: Session = Depends(get_db),
):
    workflow = _get_workflow(db, workflow_id)
    for key, value in request.model_dump(exclude_unset=True).items():
        if value is not None:
            setattr(workflow, key, value)
    db.commit()
    db.refresh(workflow)
    return workflow


@router.delete("/{workflow_id}")
async def delete_workflow(
    workflow_id: UUID,
    db: Session = Depends(get_db),
):
    workflow = _get_workflow(db, workflow_id)
    db.delete(workflow)
    db.commit()
    return {"message": "Workflow deleted successfully"}


# ========== Actions ==========


@router.get("/{workflow_id}/actions", response_model=List[WorkflowActionResponse])
async def list_workflow_actions(
    workflow_id: UUID,
    db: Session = Depends(get_db),
):
    return _get_workflow(db, workflow_id).actions


@router.post(
    "/{workflow_id}/actions",
    response_model=WorkflowActionResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_workflow_action(
    workflow_id: UUID,
    request: WorkflowActionCreate,
    db: Session = Depends(get_db),
):
    workflow = _get_workflow(db, workflow_id)
    validate_tool_config(request.type.value, request.config)

    action = WorkflowAction(
        name=request.name,
        type=request.type.value,
        config=request.config,
        order=request.order,
        is_active=request.is_active,
        workflow_id=workflow.id,
    )
    db.add(action)
    db.commit()
    db.refresh(action)
    return action


@router.put("/{workflow_id}/actions/{action_id}", response_model=WorkflowActionResponse)
async def update_workflow_action(
    workflow_id: UUID,
    action_id: UUID,
    request: WorkflowActionUpdate,
    db: Session = Depends(get_db),
):
    action = _get_action(db, workflow_id, action_id)
    changes = request.model_dump(exclude_unset=True)
    if changes.get("config") is not None:
        validate_tool_config(action.type, changes["config"])

    for key, value in changes.items():
        if value is not None:
            setattr(action, key, value)
    db.commit()
    db.refresh(action)
    return action


@router.delete("/{workflow_id}/actions/{action_id}")
async def delete_workflow_action(
    workflow_id: UUID,
    action_id: UUID,
    db: Session = Depends(get_db),
):
    action = _get_action(db, workflow_id, action_id)
    db.delete(action)
    db.commit()
    return {"message": "Workflow action deleted successfully"}
