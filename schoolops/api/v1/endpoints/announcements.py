"""
Announcements and their realtime feed.

Publishing an announcement stores it and emits ``AnnouncementPublished`` on
the event bus; ``/realtime/announcements`` relays those events either as an
SSE stream or, for clients that cannot stream, as a pollable list.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import StreamingResponse
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from schoolops.api.sse import SSE_HEADERS, event_stream, is_sse_request
from schoolops.api.v1.deps import AuthContext, get_db, require_permission
from schoolops.core.config import settings
from schoolops.core.events import (DomainEventType, create_domain_event,
                                   event_bus, publish_domain_event)
from schoolops.core.rbac import Action, Resource
from schoolops.models.announcement import Announcement
from schoolops.schemas.envelope import Envelope, ListQuery, ok, pagination_meta
from schoolops.schemas.announcement import AnnouncementCreate, AnnouncementRead

router = APIRouter(tags=["announcements"])
logger = logging.getLogger(__name__)

POLL_INTERVAL_MS = 30_000
_STREAM_TYPES = [DomainEventType.ANNOUNCEMENT_PUBLISHED]


@router.get("/announcements", response_model=Envelope[list[AnnouncementRead]])
async def list_announcements(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
    ctx: AuthContext = Depends(require_permission(Resource.ANNOUNCEMENTS, Action.READ)),
) -> dict:
    query = ListQuery(page=page, limit=limit)
    base = select(Announcement).where(Announcement.institution_id == ctx.institution_id)
    total = (await db.execute(select(func.count()).select_from(base.subquery()))).scalar_one()
    result = await db.execute(
        base.order_by(Announcement.created_at.desc(), Announcement.id.desc())
        .offset(query.offset)
        .limit(query.limit)
    )
    items = [AnnouncementRead.model_validate(a) for a in result.scalars().all()]
    return ok(items, meta=pagination_meta(query, total))


@router.post("/announcements", response_model=Envelope[AnnouncementRead], status_code=201)
async def create_announcement(
    body: AnnouncementCreate,
    db: AsyncSession = Depends(get_db),
    ctx: AuthContext = Depends(require_permission(Resource.ANNOUNCEMENTS, Action.CREATE)),
) -> dict:
    announcement = Announcement(
        institution_id=ctx.institution_id,
        title=body.title,
        body=body.body,
        priority=body.priority.value,
        author_id=ctx.user_id,
    )
    db.add(announcement)
    await db.commit()
    await db.refresh(announcement)

    publish_domain_event(
        create_domain_event(
            DomainEventType.ANNOUNCEMENT_PUBLISHED,
            ctx.institution_id,
            {
                "announcementId": announcement.id,
                "title": announcement.title,
                "priority": announcement.priority,
                "publishedBy": ctx.user_id,
            },
        )
    )
    logger.info("Announcement %s published by %s", announcement.id, ctx.user_id)
    return ok(AnnouncementRead.model_validate(announcement))


@router.get("/realtime/announcements")
async def announcements_feed(
    request: Request,
    since: str | None = Query(None, max_length=64),
    ctx: AuthContext = Depends(require_permission(Resource.REALTIME, Action.READ)),
):
    if not is_sse_request(request.headers.get("accept")):
        events = event_bus.recent(ctx.institution_id, _STREAM_TYPES, since, limit=30)
        return ok(
            [event.to_dict() for event in events],
            meta={"mode": "poll", "pollIntervalMs": POLL_INTERVAL_MS, "stream": "announcements"},
        )

    return StreamingResponse(
        event_stream(
            ctx.institution_id,
            _STREAM_TYPES,
            since=since,
            heartbeat_seconds=settings.SSE_HEARTBEAT_SECONDS,
            is_disconnected=request.is_disconnected,
        ),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )
