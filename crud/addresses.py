import logging
from typing import List, Optional

from sqlmodel import Session, select

from errors import NotFoundError
from models import UserAddress
from schemas import AddressCreate
from .base import store_call

logger = logging.getLogger(__name__)


def list_addresses(session: Session, user_id: int) -> List[UserAddress]:
    """A user's saved addresses: primary first, then newest first."""
    query = (
        select(UserAddress)
        .where(UserAddress.user_id == user_id)
        .order_by(
            UserAddress.is_primary.desc(),
            UserAddress.created_at.desc(),
            UserAddress.id.desc(),
        )
    )
    with store_call(session, "load addresses"):
        return list(session.exec(query).all())


def get_address(session: Session, user_id: int, address_id: int) -> UserAddress:
    with store_call(session, "load address"):
        address = session.get(UserAddress, address_id)
    # other users' addresses look exactly like missing ones
    if address is None or address.user_id != user_id:
        raise NotFoundError("Address not found")
    return address


def _clear_primary(session: Session, user_id: int, keep_id: Optional[int] = None) -> None:
    others = session.exec(
        select(UserAddress).where(
            UserAddress.user_id == user_id,
            UserAddress.is_primary == True,  # noqa: E712
        )
    ).all()
    for other in others:
        if other.id != keep_id:
            other.is_primary = False
            session.add(other)


def create_address(session: Session, user_id: int, data: AddressCreate) -> UserAddress:
    address = UserAddress(user_id=user_id, **data.model_dump())
    with store_call(session, "save address"):
        if address.is_primary:
            _clear_primary(session, user_id)
        session.add(address)
        session.commit()
        session.refresh(address)
    logger.info("Address %s saved for user %s", address.id, user_id)
    return address


def update_address(session: Session, user_id: int, address_id: int, data: AddressCreate) -> UserAddress:
    address = get_address(session, user_id, address_id)
    with store_call(session, "update address"):
        for key, value in data.model_dump().items():
            setattr(address, key, value)
        if address.is_primary:
            _clear_primary(session, user_id, keep_id=address.id)
        session.add(address)
        session.commit()
        session.refresh(address)
    return address


def set_primary_address(session: Session, user_id: int, address_id: int) -> UserAddress:
    """Promote one address; every other primary flag of the user is cleared in the same commit."""
    address = get_address(session, user_id, address_id)
    with store_call(session, "set primary address"):
        _clear_primary(session, user_id, keep_id=address.id)
        address.is_primary = True
        session.add(address)
        session.commit()
        session.refresh(address)
    return address


def delete_address(session: Session, user_id: int, address_id: int) -> None:
    address = get_address(session, user_id, address_id)
    with store_call(session, "delete address"):
        session.delete(address)
        session.commit()
    logger.info("Address %s deleted for user %s", address_id, user_id)
