from typing import Optional

from fastapi import APIRouter, HTTPException, Request, status
from fastapi.responses import HTMLResponse, RedirectResponse
from pydantic import ValidationError
from sqlmodel import Session

from crud import addresses as crud_addresses
from crud import profiles as crud_profiles
from crud import requests as crud_requests
from db import SessionDep
from errors import BackendError, NotFoundError
from identity import Identity
from schemas import AddressCreate, ProfileUpdate
from .auth import CurrentIdentityDep, OptionalIdentityDep
from .common import (
    FLASH_ERROR,
    FLASH_SUCCESS,
    GENERIC_FAILURE,
    flash,
    form_text,
    render,
    validation_messages,
)

router = APIRouter(prefix="/profile", tags=["profile"])

PROFILE_FIELDS = ("name", "phone", "address", "city", "state", "zip_code", "country")
ADDRESS_FIELDS = ("label", "name", "phone", "address", "city", "state", "zip_code", "country")


def _render_profile(
    request: Request,
    session: Session,
    identity: Identity,
    *,
    errors=None,
    flash_message: Optional[dict] = None,
    status_code: int = status.HTTP_200_OK,
    address_form: Optional[dict] = None,
) -> HTMLResponse:
    try:
        addresses = crud_addresses.list_addresses(session, identity.id)
        my_requests = crud_requests.list_user_requests(session, identity.id)
        profile = crud_profiles.get_profile(session, identity.id) or identity.profile
    except BackendError:
        return render(request, "error.html", identity,
                      flash_message=flash(FLASH_ERROR, GENERIC_FAILURE),
                      status_code=status.HTTP_503_SERVICE_UNAVAILABLE)
    return render(
        request,
        "profile.html",
        identity,
        errors=errors,
        flash_message=flash_message,
        status_code=status_code,
        profile=profile,
        addresses=addresses,
        my_requests=my_requests,
        address_form=address_form or {},
    )


def _address_payload(form) -> AddressCreate:
    data = {key: form_text(form, key) for key in ADDRESS_FIELDS}
    return AddressCreate(
        label=data["label"] or "Home",
        name=data["name"],
        phone=data["phone"],
        address=data["address"],
        city=data["city"],
        state=data["state"] or None,
        zip_code=data["zip_code"] or None,
        country=data["country"],
        is_primary=form_text(form, "is_primary") in ("on", "true", "yes"),
    )


@router.get("", response_class=HTMLResponse, include_in_schema=False)
def profile_page(request: Request, session: SessionDep, current: OptionalIdentityDep):
    """
    Profile fields, saved addresses and the user's own requests.
    """
    if current is None:
        return RedirectResponse(url="/login", status_code=303)
    return _render_profile(request, session, current)


@router.post("", response_class=HTMLResponse, include_in_schema=False)
async def save_profile(request: Request, session: SessionDep, current: CurrentIdentityDep):
    form = await request.form()
    try:
        payload = ProfileUpdate(**{key: form_text(form, key) for key in PROFILE_FIELDS})
        crud_profiles.update_profile(session, current.id, payload)
    except ValidationError as exc:
        return _render_profile(request, session, current, errors=validation_messages(exc),
                               status_code=status.HTTP_400_BAD_REQUEST)
    except NotFoundError:
        raise HTTPException(status_code=404, detail="Profile not found")
    except BackendError:
        return _render_profile(request, session, current,
                               flash_message=flash(FLASH_ERROR, "Failed to update profile."),
                               status_code=status.HTTP_503_SERVICE_UNAVAILABLE)
    return _render_profile(request, session, current,
                           flash_message=flash(FLASH_SUCCESS, "Profile updated."))


@router.post("/addresses", response_class=HTMLResponse, include_in_schema=False)
async def add_address(request: Request, session: SessionDep, current: CurrentIdentityDep):
    form = await request.form()
    try:
        crud_addresses.create_address(session, current.id, _address_payload(form))
    except ValidationError as exc:
        return _render_profile(request, session, current, errors=validation_messages(exc),
                               address_form={key: form_text(form, key) for key in ADDRESS_FIELDS},
                               status_code=status.HTTP_400_BAD_REQUEST)
    except BackendError:
        return _render_profile(request, session, current,
                               flash_message=flash(FLASH_ERROR, "Failed to save address."),
                               status_code=status.HTTP_503_SERVICE_UNAVAILABLE)
    return _render_profile(request, session, current,
                           flash_message=flash(FLASH_SUCCESS, "Address saved."))


@router.post("/addresses/{address_id}", response_class=HTMLResponse, include_in_schema=False)
async def edit_address(address_id: int, request: Request, session: SessionDep,
                       current: CurrentIdentityDep):
    form = await request.form()
    try:
        crud_addresses.update_address(session, current.id, address_id, _address_payload(form))
    except ValidationError as exc:
        return _render_profile(request, session, current, errors=validation_messages(exc),
                               status_code=status.HTTP_400_BAD_REQUEST)
    except NotFoundError:
        raise HTTPException(status_code=404, detail="Address not found")
    except BackendError:
        return _render_profile(request, session, current,
                               flash_message=flash(FLASH_ERROR, "Failed to update address."),
                               status_code=status.HTTP_503_SERVICE_UNAVAILABLE)
    return _render_profile(request, session, current,
                           flash_message=flash(FLASH_SUCCESS, "Address updated."))


@router.post("/addresses/{address_id}/primary", response_class=HTMLResponse, include_in_schema=False)
def make_primary(address_id: int, request: Request, session: SessionDep, current: CurrentIdentityDep):
    try:
        crud_addresses.set_primary_address(session, current.id, address_id)
    except NotFoundError:
        raise HTTPException(status_code=404, detail="Address not found")
    except BackendError:
        return _render_profile(request, session, current,
                               flash_message=flash(FLASH_ERROR, "Failed to update address."),
                               status_code=status.HTTP_503_SERVICE_UNAVAILABLE)
    return _render_profile(request, session, current,
                           flash_message=flash(FLASH_SUCCESS, "Primary address updated."))


@router.post("/addresses/{address_id}/delete", response_class=HTMLResponse, include_in_schema=False)
def remove_address(address_id: int, request: Request, session: SessionDep, current: CurrentIdentityDep):
    try:
        crud_addresses.delete_address(session, current.id, address_id)
    except NotFoundError:
        raise HTTPException(status_code=404, detail="Address not found")
    except BackendError:
        return _render_profile(request, session, current,
                               flash_message=flash(FLASH_ERROR, "Failed to delete address."),
                               status_code=status.HTTP_503_SERVICE_UNAVAILABLE)
    return _render_profile(request, session, current,
                           flash_message=flash(FLASH_SUCCESS, "Address deleted."))
