"""
Bot tools API router

- /api/v1/bots/{bot_id}/tools: CRUD and test runs for one bot
- /api/v1/tools: every tool across the user's bots
"""
import logging
from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from metaplatform.agents.tool_catalog import DEFAULT_TEST_PARAMS
from metaplatform.database import get_db
from metaplatform.models import BotTool
from metaplatform.repositories import BotRepository
from metaplatform.routers.bots import get_owned_bot
from metaplatform.schemas.bot import (
    BotToolCreate,
    BotToolResponse,
    BotToolUpdate,
    ToolTestRequest,
    ToolTestResponse,
)
from metaplatform.services.tool_execution_service import ToolExecutionService, validate_tool_config
from metaplatform.utils.errors import AppError, NotFoundError

logger = logging.getLogger(__name__)

router = APIRouter()
tools_router = APIRouter()


def _get_tool(db: Session, bot_id: UUID, tool_id: UUID) -> BotTool:
    tool = db.query(BotTool).filter(
        BotTool.id == tool_id,
        BotTool.bot_id == bot_id,
    ).first()
    if not tool:
        raise NotFoundError("Tool not found")
    return tool


@router.get("/{bot_id}/tools", response_model=List[BotToolResponse])
async def list_bot_tools(
    bot_id: UUID,
    user_id: UUID = Query(...),
    active_only: bool = Query(False),
    db: Session = Depends(get_db),
):
    get_owned_bot(db, bot_id, user_id)
    return BotRepository(db).list_tools(bot_id, active_only=active_only)


@router.post(
    "/{bot_id}/tools",
    response_model=BotToolResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_bot_tool(
    bot_id: UUID,
    request: BotToolCreate,
    user_id: UUID = Query(...),
    db: Session = Depends(get_db),
):
    """Attach a tool to a bot; the config must match the tool type"""
    bot = get_owned_bot(db, bot_id, user_id)
    validate_tool_config(request.type.value, request.config)

    tool = BotTool(
        name=request.name,
        display_name=request.display_name or request.name,
        description=request.description,
        type=request.type.value,
        config=request.config,
        is_active=request.is_active,
        requires_auth=request.requires_auth,
        bot_id=bot.id,
    )
    db.add(tool)
    db.commit()
    db.refresh(tool)

    logger.info(f"Added {tool.type} tool {tool.name} to bot {bot.id}")
    return tool


@router.get("/{bot_id}/tools/{tool_id}", response_model=BotToolResponse)
async def get_bot_tool(
    bot_id: UUID,
    tool_id: UUID,
    user_id: UUID = Query(...),
    db: Session = Depends(get_db),
):
    get_owned_bot(db, bot_id, user_id)
    return _get_tool(db, bot_id, tool_id)


@router.put("/{bot_id}/tools/{tool_id}", response_model=BotToolResponse)
async def update_bot_tool(
    bot_id: UUID,
    tool_id: UUID,
    request: BotToolUpdate,
    user_id: UUID = Query(...),
    db: Session = Depends(get_db),
):
    get_owned_bot(db, bot_id, user_id)
    tool = _get_tool(db, bot_id, tool_id)
    changes = request.model_dump(exclude_unset=True)
    if changes.get("config") is not None:
        validate_tool_config(tool.type, changes["config"])

    for key, value in changes.items():
        if value is not None:
            setattr(tool, key, value)
    db.commit()
    db.refresh(tool)
    return tool


@router.delete("/{bot_id}/tools/{tool_id}")
async def delete_bot_tool(
    bot_id: UUID,
    tool_id: UUID,
    user_id: UUID = Query(...),
    db: Session = Depends(get_db),
):
    get_owned_bot(db, bot_id, user_id)
    tool = _get_tool(db, bot_id, tool_id)
    db.delete(tool)
    db.commit()
    return {"message": "Tool deleted successfully"}


@router.post("/{bot_id}/tools/{tool_id}/test", response_model=ToolTestResponse)
async def test_bot_tool(
    bot_id: UUID,
    tool_id: UUID,
    request: ToolTestRequest = None,
    user_id: UUID = Query(...),
    db: Session = Depends(get_db),
):
    """
    Run a tool once

    Without params the default test parameters of the tool type are used.
    Tool failures are reported in the body, not as an HTTP error.
    """
    get_owned_bot(db, bot_id, user_id)
    tool = _get_tool(db, bot_id, tool_id)

    params = dict(request.params) if request and request.params is not None else dict(DEFAULT_TEST_PARAMS.get(tool.type, {}))
    if tool.type == "mcp_tool":
        params.setdefault("userId", str(user_id))

    try:
        result = ToolExecutionService(db).execute_tool(tool, params)
    except AppError as e:
        logger.info(f"Tool test failed for {tool.name}: {e.message}")
        return ToolTestResponse(success=False, params=params, error=e.message)
    except Exception as e:
        db.rollback()
        logger.error(f"Tool test crashed for {tool.name}: {e}", exc_info=True)
        return ToolTestResponse(success=False, params=params, error=f"Tool execution failed: {e}")

    return ToolTestResponse(success=True, params=params, result=result)


@tools_router.get("", response_model=List[BotToolResponse])
async def list_user_tools(
    user_id: UUID = Query(...),
    db: Session = Depends(get_db),
):
    """Tools of every bot owned by the user"""
    return BotRepository(db).list_tools_for_user(user_id)
