from typing import Optional

from sqlmodel import Session

from errors import NotFoundError
from models import UserProfile, utcnow
from schemas import ProfileUpdate
from .base import store_call


def get_profile(session: Session, user_id: int) -> Optional[UserProfile]:
    with store_call(session, "load profile"):
        return session.get(UserProfile, user_id)


def update_profile(session: Session, user_id: int, data: ProfileUpdate) -> UserProfile:
    profile = get_profile(session, user_id)
    if profile is None:
        raise NotFoundError("Profile not found")
    with store_call(session, "update profile"):
        profile.name = data.name
        for key, value in data.model_dump(exclude={"name"}).items():
            # blank optional fields are stored as NULL
            setattr(profile, key, value or None)
        profile.updated_at = utcnow()
        session.add(profile)
        session.commit()
        session.refresh(profile)
    return profile
