from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query

from ..context import TelemetryContext
from ..errors import NotFoundError
from ..models.notification_models import Notification, Severity
from .dependencies import get_context

router = APIRouter(
    prefix="/notifications",
    tags=["notifications"],
)


@router.get("", summary="Newest-first notification log.")
def list_notifications(
    severity: Optional[Severity] = Query(
        None,
        description="Return this severity and anything more severe",
    ),
    unread_only: bool = Query(False),
    limit: Optional[int] = Query(None, ge=1),
    ctx: TelemetryContext = Depends(get_context),
) -> List[Notification]:
    return ctx.notifications.get_notifications(
        severity=severity,
        unread_only=unread_only,
        limit=limit,
    )


@router.post("/read-all", summary="Mark every notification as read.")
def mark_all_read(ctx: TelemetryContext = Depends(get_context)) -> Dict[str, Any]:
    updated = ctx.notifications.mark_all_as_read()
    return {"success": True, "updated": updated}


@router.post("/{notification_id}/read", summary="Mark one notification as read.")
def mark_read(notification_id: str, ctx: TelemetryContext = Depends(get_context)) -> Dict[str, Any]:
    if not ctx.notifications.mark_as_read(notification_id):
        raise NotFoundError("Notification", notification_id)
    return {"success": True, "id": notification_id}
