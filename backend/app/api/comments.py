"""Engineer remarks on logbook entries. Only the author may edit or delete."""

import logging
from datetime import datetime

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy import false, select
from sqlalchemy.ext.asyncio import AsyncSession

from core.auth import get_principal, require_engineer
from core.errors import NotFound, PermissionDenied, ValidationError
from core.security import EngineerPrincipal, Principal
from models import Comment, LogEntry, User, UserRole, get_session, utcnow

logger = logging.getLogger("logbook.comments")

router = APIRouter(prefix="/api/logbook", tags=["comments"])


# --- Schemas ---

class CommentIn(BaseModel):
    comment_text: str = ""


class CommentOut(BaseModel):
    id: int
    log_id: int
    user_id: int
    comment_text: str
    is_edited: bool
    created_at: datetime
    updated_at: datetime | None
    full_name: str
    role: UserRole


async def _visible_entry(session: AsyncSession, principal: Principal, log_id: int) -> LogEntry:
    entry = await session.get(LogEntry, log_id)
    scope = principal.scope_substation_id
    if entry is None or (scope is not None and entry.substation_id != scope):
        raise NotFound("Logbook entry not found")
    return entry


async def _own_comment(session: AsyncSession, engineer: EngineerPrincipal, comment_id: int, action: str) -> Comment:
    comment = await session.get(Comment, comment_id)
    if comment is None or comment.is_deleted:
        raise NotFound("Comment not found")
    if comment.user_id != engineer.id:
        raise PermissionDenied(f"You can only {action} your own comments")
    return comment


def _require_text(data: CommentIn) -> str:
    if not data.comment_text.strip():
        raise ValidationError("Comment text is required")
    return data.comment_text


# --- Endpoints ---

@router.get("/entries/{log_id}/comments")
async def list_comments(
    log_id: int,
    principal: Principal = Depends(get_principal),
    session: AsyncSession = Depends(get_session),
):
    await _visible_entry(session, principal, log_id)
    result = await session.execute(
        select(Comment, User.full_name, User.role)
        .join(User, User.id == Comment.user_id)
        .where(Comment.log_id == log_id, Comment.is_deleted == false())
        .order_by(Comment.created_at, Comment.id)
    )
    comments = [
        CommentOut(
            id=c.id,
            log_id=c.log_id,
            user_id=c.user_id,
            comment_text=c.comment_text,
            is_edited=c.is_edited,
            created_at=c.created_at,
            updated_at=c.updated_at,
            full_name=full_name,
            role=role,
        )
        for c, full_name, role in result.all()
    ]
    return {"success": True, "comments": comments}


@router.post("/entries/{log_id}/comments")
async def add_comment(
    log_id: int,
    data: CommentIn,
    engineer: EngineerPrincipal = Depends(require_engineer),
    session: AsyncSession = Depends(get_session),
):
    text = _require_text(data)
    await _visible_entry(session, engineer, log_id)
    comment = Comment(log_id=log_id, user_id=engineer.id, comment_text=text)
    session.add(comment)
    await session.commit()
    logger.info("Comment #%d added to entry #%d by engineer #%d", comment.id, log_id, engineer.id)
    return {"success": True, "message": "Comment added successfully", "comment_id": comment.id}


@router.put("/comments/{comment_id}")
async def edit_comment(
    comment_id: int,
    data: CommentIn,
    engineer: EngineerPrincipal = Depends(require_engineer),
    session: AsyncSession = Depends(get_session),
):
    comment = await _own_comment(session, engineer, comment_id, "edit")
    comment.comment_text = _require_text(data)
    comment.is_edited = True
    comment.updated_at = utcnow()
    await session.commit()
    return {"success": True, "message": "Comment updated successfully"}


@router.delete("/comments/{comment_id}")
async def delete_comment(
    comment_id: int,
    engineer: EngineerPrincipal = Depends(require_engineer),
    session: AsyncSession = Depends(get_session),
):
    comment = await _own_comment(session, engineer, comment_id, "delete")
    comment.is_deleted = True
    await session.commit()
    return {"success": True, "message": "Comment deleted successfully"}
