"""Request-scoped dependencies shared by the route modules."""

import re
from datetime import datetime
from typing import Annotated, List, Optional

from fastapi import Depends, Header, HTTPException, Query, status

from coffee_export.core.clock import Clock, IdGenerator, system_clock, uuid_generator
from coffee_export.schemas.base import SYSTEM_ACTOR_ID, UUID_PATTERN
from coffee_export.schemas.pagination import SearchCriteria, SortOrder
from coffee_export.services.notifications import NotificationDispatcher, default_dispatcher
from coffee_export.services.workflow import TransitionResult

_UUID_RE = re.compile(UUID_PATTERN)


def get_clock() -> Clock:
    return system_clock


def get_ids() -> IdGenerator:
    return uuid_generator


def get_dispatcher() -> NotificationDispatcher:
    return default_dispatcher


def get_actor_id(x_actor_id: Annotated[str, Header()] = SYSTEM_ACTOR_ID) -> str:
    """Staff user performing the request; the public site acts as the system actor."""
    if not _UUID_RE.match(x_actor_id):
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="X-Actor-Id must be a UUID",
        )
    return x_actor_id


ClockDep = Annotated[Clock, Depends(get_clock)]
IdsDep = Annotated[IdGenerator, Depends(get_ids)]
DispatcherDep = Annotated[NotificationDispatcher, Depends(get_dispatcher)]
ActorId = Annotated[str, Depends(get_actor_id)]


def search_criteria(
    status_filter: Annotated[Optional[List[str]], Query(alias="status")] = None,
    kind: Annotated[Optional[List[str]], Query()] = None,
    client_id: Optional[str] = None,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    q: Annotated[Optional[str], Query(max_length=200, description="Free-text search")] = None,
    sort_by: Optional[str] = None,
    sort_order: SortOrder = SortOrder.DESC,
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=200)] = 20,
) -> SearchCriteria:
    return SearchCriteria(
        status=status_filter,
        kind=kind,
        client_id=client_id,
        date_from=date_from,
        date_to=date_to,
        text=q,
        sort_by=sort_by,
        sort_order=sort_order,
        page=page,
        limit=limit,
    )


Criteria = Annotated[SearchCriteria, Depends(search_criteria)]


def unwrap(result: TransitionResult) -> dict:
    """Return the record of a successful workflow result or raise 404 / 409."""
    if result.not_found:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=result.reason)
    if not result.success:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=result.reason)
    return result.record.to_dict()
