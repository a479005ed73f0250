import logging
from typing import Dict, FrozenSet, List, Optional

from sqlalchemy import func
from sqlmodel import Session, select

from errors import InvalidStatusTransition, NotFoundError
from models import ItemRequest, RequestStatus, UserProfile, utcnow
from .base import store_call

logger = logging.getLogger(__name__)

# the only status changes an admin may make
ALLOWED_TRANSITIONS: Dict[RequestStatus, FrozenSet[RequestStatus]] = {
    RequestStatus.PENDING: frozenset({RequestStatus.APPROVED, RequestStatus.REJECTED}),
    RequestStatus.APPROVED: frozenset({RequestStatus.FULFILLED}),
    RequestStatus.REJECTED: frozenset(),
    RequestStatus.FULFILLED: frozenset(),
}


def next_statuses(status: RequestStatus) -> List[RequestStatus]:
    """Statuses offered as next actions, in display order."""
    allowed = ALLOWED_TRANSITIONS[RequestStatus(status)]
    return [candidate for candidate in RequestStatus if candidate in allowed]


def requester_name(profile: Optional[UserProfile], email: str) -> str:
    if profile is not None and profile.name:
        return profile.name
    local_part = (email or "").split("@")[0]
    return local_part or "Anonymous"


def create_request(
    session: Session,
    *,
    user_id: int,
    user_email: str,
    user_name: str,
    submission,
) -> ItemRequest:
    details = submission.details
    item_request = ItemRequest(
        user_id=user_id,
        user_email=user_email,
        user_name=user_name,
        item_name=details.name,
        category=submission.category,
        quantity=details.quantity,
        description=details.description,
        status=RequestStatus.PENDING,
        **submission.shipping.request_columns(),
    )
    with store_call(session, "submit request"):
        session.add(item_request)
        session.commit()
        session.refresh(item_request)
    logger.info("Request %s for %s x%d submitted by user %s",
                item_request.id, item_request.item_name, item_request.quantity, user_id)
    return item_request


def get_request(session: Session, request_id: int) -> ItemRequest:
    with store_call(session, "load request"):
        item_request = session.get(ItemRequest, request_id)
    if item_request is None:
        raise NotFoundError("Request not found")
    return item_request


def list_requests(session: Session, status: Optional[RequestStatus] = None) -> List[ItemRequest]:
    query = select(ItemRequest)
    if status is not None:
        query = query.where(ItemRequest.status == status)
    query = query.order_by(ItemRequest.created_at.desc(), ItemRequest.id.desc())
    with store_call(session, "load requests"):
        return list(session.exec(query).all())


def list_user_requests(session: Session, user_id: int) -> List[ItemRequest]:
    query = (
        select(ItemRequest)
        .where(ItemRequest.user_id == user_id)
        .order_by(ItemRequest.created_at.desc(), ItemRequest.id.desc())
    )
    with store_call(session, "load your requests"):
        return list(session.exec(query).all())


def count_pending(session: Session) -> int:
    query = select(func.count()).select_from(ItemRequest).where(
        ItemRequest.status == RequestStatus.PENDING
    )
    with store_call(session, "count requests"):
        return session.exec(query).one()


def update_request_status(
    session: Session,
    request_id: int,
    new_status: RequestStatus,
    admin_notes: Optional[str] = None,
) -> ItemRequest:
    """
    Move a request along pending -> approved|rejected, approved -> fulfilled.
    Any other change raises ``InvalidStatusTransition``.
    """
    new_status = RequestStatus(new_status)
    item_request = get_request(session, request_id)
    current = RequestStatus(item_request.status)
    if new_status not in ALLOWED_TRANSITIONS[current]:
        raise InvalidStatusTransition(current.value, new_status.value)

    with store_call(session, "update request"):
        item_request.status = new_status
        if admin_notes is not None and admin_notes.strip():
            item_request.admin_notes = admin_notes.strip()
        item_request.updated_at = utcnow()
        session.add(item_request)
        session.commit()
        session.refresh(item_request)
    logger.info("Request %s: %s -> %s", request_id, current.value, new_status.value)
    return item_request
