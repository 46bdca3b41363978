"""Endpoints and websocket handler for marketplace notifications."""

from __future__ import annotations

from datetime import timedelta
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, Response, WebSocket, status
from sqlalchemy.orm import Session

from app.application.use_cases.notifications import (
    NotificationRequest,
    TargetingCriteria,
    inbox,
)
from app.bootstrap import NotificationServices
from app.domain.entities import Notification, User
from app.domain.exceptions import NotificationError, NotificationNotFound
from app.infrastructure.database import get_db
from app.interfaces.api.dependencies import (
    get_current_active_user,
    get_notification_services,
    require_admin,
)
from app.interfaces.api.schemas import (
    AffectedRowsRead,
    BroadcastCreate,
    BroadcastReportRead,
    NotificationCreate,
    NotificationMarkReadRequest,
    NotificationPageRead,
    NotificationRead,
    RetryFailedRead,
    RetryFailedRequest,
    UnreadCountRead,
)

router = APIRouter(prefix="/notifications", tags=["notifications"])


def _to_read_model(notification: Notification) -> NotificationRead:
    return NotificationRead.model_validate(notification)


def _bad_request(exc: Exception) -> HTTPException:
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))


@router.get("/", response_model=NotificationPageRead)
def list_notifications(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=inbox.MAX_PAGE_SIZE),
    unread_only: bool = False,
    type: list[str] | None = Query(None, description="Filtra por tipo de notificación"),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> NotificationPageRead:
    """Devuelve la bandeja de notificaciones del usuario autenticado."""

    try:
        result = inbox.list_notifications(
            db, current_user.id, page=page, limit=limit, unread_only=unread_only, types=type
        )
    except ValueError as exc:
        raise _bad_request(exc) from exc
    return NotificationPageRead(
        items=[_to_read_model(notification) for notification in result.items],
        total=result.total,
        page=result.page,
        limit=result.limit,
        pages=result.pages,
        unread_count=result.unread_count,
    )


@router.get("/unread-count", response_model=UnreadCountRead)
def unread_count(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> UnreadCountRead:
    return UnreadCountRead(count=inbox.get_unread_count(db, current_user.id))


@router.post("/read", response_model=AffectedRowsRead)
def mark_notifications_as_read(
    payload: NotificationMarkReadRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> AffectedRowsRead:
    """Marca como leídas las notificaciones indicadas."""

    updated = inbox.mark_notifications_read(db, payload.unique_ids(), user_id=current_user.id)
    return AffectedRowsRead(updated=updated)


@router.post("/read-all", response_model=AffectedRowsRead)
def mark_all_as_read(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> AffectedRowsRead:
    return AffectedRowsRead(updated=inbox.mark_all_notifications_read(db, current_user.id))


def _toggle_read(db: Session, notification_id: int, user: User, *, read: bool) -> NotificationRead:
    try:
        inbox.get_notification(db, notification_id, user_id=user.id)
    except NotificationNotFound as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Notificación no encontrada"
        ) from exc
    if read:
        inbox.mark_notifications_read(db, [notification_id], user_id=user.id)
    else:
        inbox.mark_notifications_unread(db, [notification_id], user_id=user.id)
    return _to_read_model(inbox.get_notification(db, notification_id, user_id=user.id))


@router.patch("/{notification_id}/read", response_model=NotificationRead)
def mark_as_read(
    notification_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> NotificationRead:
    return _toggle_read(db, notification_id, current_user, read=True)


@router.patch("/{notification_id}/unread", response_model=NotificationRead)
def mark_as_unread(
    notification_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> NotificationRead:
    return _toggle_read(db, notification_id, current_user, read=False)


@router.delete("/{notification_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_notification(
    notification_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> Response:
    """Elimina una notificación del usuario autenticado."""

    if not inbox.delete_notifications(db, [notification_id], user_id=current_user.id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Notificación no encontrada")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/", response_model=NotificationRead, status_code=status.HTTP_201_CREATED)
async def create_notification(
    payload: NotificationCreate,
    services: NotificationServices = Depends(get_notification_services),
    current_user: User = Depends(require_admin),
) -> NotificationRead:
    """Crea una notificación para un destinatario y la entrega."""

    request = NotificationRequest(
        type=payload.type,
        title=payload.title,
        message=payload.message,
        metadata={**payload.metadata, "created_by": current_user.id},
        priority=payload.priority,
        action_url=payload.action_url,
        expires_at=payload.expires_at,
        realtime=payload.realtime,
        email=payload.email,
        force_email=payload.force_email,
    )
    try:
        notification = await services.orchestrator.create_notification(payload.recipient_id, request)
    except NotificationError as exc:
        raise _bad_request(exc) from exc
    return _to_read_model(notification)


@router.post("/broadcast", response_model=BroadcastReportRead)
async def broadcast_notification(
    payload: BroadcastCreate,
    services: NotificationServices = Depends(get_notification_services),
    current_user: User = Depends(require_admin),
) -> dict[str, Any]:
    """Difunde una notificación a los destinatarios que cumplen los criterios."""

    request = NotificationRequest(
        type=payload.type,
        title=payload.title,
        message=payload.message,
        metadata={**payload.metadata, "created_by": current_user.id},
        priority=payload.priority,
        action_url=payload.action_url,
        expires_at=payload.expires_at,
        realtime=False,
        email=payload.email,
    )
    criteria = TargetingCriteria(**payload.targets.model_dump())
    try:
        report = await services.orchestrator.orchestrate_broadcast(
            request, criteria, schedule_at=payload.schedule_at
        )
    except NotificationError as exc:
        raise _bad_request(exc) from exc
    return report.to_dict()


@router.get("/statistics")
def notification_statistics(
    services: NotificationServices = Depends(get_notification_services),
    _: User = Depends(require_admin),
) -> dict[str, Any]:
    return services.orchestrator.broadcasting_statistics()


@router.post("/retry-failed", response_model=RetryFailedRead)
async def retry_failed_notifications(
    payload: RetryFailedRequest,
    services: NotificationServices = Depends(get_notification_services),
    _: User = Depends(require_admin),
) -> dict[str, int]:
    """Reintenta la entrega de notificaciones recientes que fallaron."""

    return await services.orchestrator.bulk_retry_failed(
        max_age=timedelta(hours=payload.max_age_hours),
        notification_type=payload.type,
        user_id=payload.user_id,
        limit=payload.limit,
    )


@router.websocket("/ws")
async def notifications_websocket(websocket: WebSocket) -> None:
    """Websocket endpoint that streams notifications to the authenticated user."""

    services: NotificationServices | None = getattr(websocket.app.state, "notifications", None)
    if services is None:
        await websocket.close(code=1011)
        return
    await services.gateway.serve(websocket, websocket.query_params.get("token"))
