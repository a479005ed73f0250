import logging
from typing import Iterable, List, Optional

from sqlmodel import Session, select

from errors import NotFoundError
from models import DonationItem, ItemCategory, utcnow
from schemas import ItemCreate
from .base import store_call

logger = logging.getLogger(__name__)


def _newest_first(query):
    return query.order_by(DonationItem.created_at.desc(), DonationItem.id.desc())


def filter_items(
    items: Iterable[DonationItem],
    category: Optional[str] = None,
    search: Optional[str] = None,
) -> List[DonationItem]:
    """
    Category equality plus a case-insensitive substring match on name or
    description. ``category`` of ``None``, "" or "all" matches everything.
    """
    needle = (search or "").strip().lower()
    wanted = None if category in (None, "", "all") else category

    results = []
    for item in items:
        if wanted is not None and item.category != wanted:
            continue
        if needle and needle not in item.name.lower() and needle not in item.description.lower():
            continue
        results.append(item)
    return results


def list_available_items(
    session: Session,
    category: Optional[str] = None,
    search: Optional[str] = None,
) -> List[DonationItem]:
    """Load the whole available set, newest first, and filter it in memory."""
    with store_call(session, "load items"):
        items = session.exec(
            _newest_first(select(DonationItem).where(DonationItem.is_available == True))  # noqa: E712
        ).all()
    return filter_items(items, category, search)


def list_pending_donations(session: Session) -> List[DonationItem]:
    with store_call(session, "load pending donations"):
        return list(session.exec(
            _newest_first(select(DonationItem).where(DonationItem.is_available == False))  # noqa: E712
        ).all())


def get_item(session: Session, item_id: int, available_only: bool = False) -> DonationItem:
    with store_call(session, "load item"):
        item = session.get(DonationItem, item_id)
    if item is None or (available_only and not item.is_available):
        raise NotFoundError("Item not found")
    return item


def related_items(session: Session, item: DonationItem, limit: int = 3) -> List[DonationItem]:
    """Other available items of the same category."""
    query = _newest_first(
        select(DonationItem).where(
            DonationItem.category == item.category,
            DonationItem.id != item.id,
            DonationItem.is_available == True,  # noqa: E712
        )
    ).limit(limit)
    with store_call(session, "load related items"):
        return list(session.exec(query).all())


def create_donation(session: Session, *, donor_id: int, submission) -> DonationItem:
    """
    Store a donor's submission as a pending (unavailable) item. The donor's
    contact snapshot is appended to the description.
    """
    details = submission.details
    item = DonationItem(
        donor_id=donor_id,
        name=details.name,
        description=f"{details.description}\n\n---\n{submission.shipping.donor_note()}",
        category=submission.category,
        quantity=details.quantity,
        condition=details.condition or "Good",
        image_url=details.image_url or None,
        is_available=False,
    )
    with store_call(session, "submit donation"):
        session.add(item)
        session.commit()
        session.refresh(item)
    logger.info("Donation %s (%s) submitted by user %s", item.id, item.name, donor_id)
    return item


def add_item(session: Session, item_in: ItemCreate) -> DonationItem:
    """Admin shortcut: the item is live immediately."""
    item = DonationItem(
        name=item_in.name,
        description=item_in.description,
        category=ItemCategory(item_in.category),
        quantity=item_in.quantity,
        condition=item_in.condition or "Good",
        image_url=item_in.image_url or None,
        is_available=True,
    )
    with store_call(session, "add item"):
        session.add(item)
        session.commit()
        session.refresh(item)
    logger.info("Item %s (%s) added by an admin", item.id, item.name)
    return item


def _set_availability(session: Session, item_id: int, available: bool, action: str) -> DonationItem:
    item = get_item(session, item_id)
    with store_call(session, action):
        item.is_available = available
        item.updated_at = utcnow()
        session.add(item)
        session.commit()
        session.refresh(item)
    return item


def approve_donation(session: Session, item_id: int) -> DonationItem:
    """Make a donation visible. Approving an available item again is harmless."""
    item = _set_availability(session, item_id, True, "approve donation")
    logger.info("Donation %s approved", item_id)
    return item


def toggle_availability(session: Session, item_id: int) -> DonationItem:
    item = get_item(session, item_id)
    return _set_availability(session, item_id, not item.is_available, "update item")


def delete_item(session: Session, item_id: int) -> None:
    item = get_item(session, item_id)
    with store_call(session, "delete item"):
        session.delete(item)
        session.commit()
    logger.info("Item %s deleted", item_id)


def reject_donation(session: Session, item_id: int) -> None:
    """Rejecting a donation deletes it; there is no undo."""
    delete_item(session, item_id)
