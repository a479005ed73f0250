import logging
from typing import Optional

from fastapi import APIRouter, HTTPException, Request, status
from fastapi.responses import HTMLResponse, RedirectResponse
from pydantic import ValidationError
from sqlmodel import Session

from crud import items as crud_items
from crud import requests as crud_requests
from db import SessionDep
from errors import BackendError, FormValidationError, NotFoundError
from identity import Identity
from models import RequestStatus
from schemas import ItemCreate, RequestStatusUpdate
from .auth import AdminIdentityDep, OptionalIdentityDep
from .common import (
    FLASH_ERROR,
    FLASH_SUCCESS,
    GENERIC_FAILURE,
    flash,
    form_text,
    render,
    validation_messages,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])

TABS = ("donations", "inventory", "requests")


def _render_panel(
    request: Request,
    session: Session,
    identity: Identity,
    tab: str = "donations",
    *,
    errors=None,
    flash_message: Optional[dict] = None,
    status_code: int = status.HTTP_200_OK,
    form_data: Optional[dict] = None,
) -> HTMLResponse:
    if tab not in TABS:
        tab = "donations"
    try:
        pending_donations = crud_items.list_pending_donations(session)
        inventory = crud_items.list_available_items(session)
        item_requests = crud_requests.list_requests(session)
        pending_count = crud_requests.count_pending(session)
    except BackendError:
        return render(request, "error.html", identity,
                      flash_message=flash(FLASH_ERROR, GENERIC_FAILURE),
                      status_code=status.HTTP_503_SERVICE_UNAVAILABLE)

    return render(
        request,
        "admin.html",
        identity,
        errors=errors,
        flash_message=flash_message,
        status_code=status_code,
        tab=tab,
        pending_donations=pending_donations,
        inventory=inventory,
        item_requests=item_requests,
        pending_count=pending_count,
        next_statuses=crud_requests.next_statuses,
        form_data=form_data or {},
    )


def _confirmed(form) -> bool:
    return form_text(form, "confirm") == "yes"


@router.get("", response_class=HTMLResponse, include_in_schema=False)
def admin_panel(request: Request, session: SessionDep, current: OptionalIdentityDep,
                tab: str = "donations"):
    """
    Admin panel. Anyone else is sent back to the home page.
    """
    if current is None or not current.is_admin:
        return RedirectResponse(url="/", status_code=303)
    return _render_panel(request, session, current, tab)


@router.post("/donations/{item_id}/approve", response_class=HTMLResponse, include_in_schema=False)
def approve_donation(item_id: int, request: Request, session: SessionDep, current: AdminIdentityDep):
    try:
        item = crud_items.approve_donation(session, item_id)
    except NotFoundError:
        raise HTTPException(status_code=404, detail="Donation not found")
    except BackendError:
        return _render_panel(request, session, current, "donations",
                             flash_message=flash(FLASH_ERROR, "Failed to approve donation."),
                             status_code=status.HTTP_503_SERVICE_UNAVAILABLE)
    return _render_panel(request, session, current, "donations",
                         flash_message=flash(FLASH_SUCCESS, f"{item.name} is now available."))


@router.post("/donations/{item_id}/reject", response_class=HTMLResponse, include_in_schema=False)
async def reject_donation(item_id: int, request: Request, session: SessionDep, current: AdminIdentityDep):
    form = await request.form()
    if not _confirmed(form):
        return _render_panel(request, session, current, "donations",
                             errors=["Please confirm that the donation should be rejected."],
                             status_code=status.HTTP_400_BAD_REQUEST)
    try:
        crud_items.reject_donation(session, item_id)
    except NotFoundError:
        raise HTTPException(status_code=404, detail="Donation not found")
    except BackendError:
        return _render_panel(request, session, current, "donations",
                             flash_message=flash(FLASH_ERROR, "Failed to reject donation."),
                             status_code=status.HTTP_503_SERVICE_UNAVAILABLE)
    logger.info("Admin %s rejected donation %s", current.id, item_id)
    return _render_panel(request, session, current, "donations",
                         flash_message=flash(FLASH_SUCCESS, "Donation rejected."))


@router.post("/requests/{request_id}/status", response_class=HTMLResponse, include_in_schema=False)
async def update_request_status(request_id: int, request: Request, session: SessionDep,
                                current: AdminIdentityDep):
    form = await request.form()
    try:
        payload = RequestStatusUpdate(
            status=form_text(form, "status"),
            admin_notes=form_text(form, "admin_notes") or None,
        )
        item_request = crud_requests.update_request_status(
            session, request_id, payload.status, payload.admin_notes
        )
    except ValidationError as exc:
        return _render_panel(request, session, current, "requests",
                             errors=validation_messages(exc),
                             status_code=status.HTTP_400_BAD_REQUEST)
    except FormValidationError as exc:
        return _render_panel(request, session, current, "requests",
                             errors=exc.messages, status_code=status.HTTP_400_BAD_REQUEST)
    except NotFoundError:
        raise HTTPException(status_code=404, detail="Request not found")
    except BackendError:
        return _render_panel(request, session, current, "requests",
                             flash_message=flash(FLASH_ERROR, "Failed to update request."),
                             status_code=status.HTTP_503_SERVICE_UNAVAILABLE)

    label = RequestStatus(item_request.status).value
    return _render_panel(request, session, current, "requests",
                         flash_message=flash(FLASH_SUCCESS, f"Request marked {label}."))


@router.post("/items", response_class=HTMLResponse, include_in_schema=False)
async def add_item(request: Request, session: SessionDep, current: AdminIdentityDep):
    form = await request.form()
    form_data = {
        key: form_text(form, key)
        for key in ("name", "description", "category", "quantity", "condition", "image_url")
    }
    try:
        payload = ItemCreate(
            name=form_data["name"],
            description=form_data["description"],
            category=form_data["category"],
            quantity=form_data["quantity"] or 1,
            condition=form_data["condition"] or "Good",
            image_url=form_data["image_url"] or None,
        )
        item = crud_items.add_item(session, payload)
    except ValidationError as exc:
        return _render_panel(request, session, current, "inventory",
                             errors=validation_messages(exc), form_data=form_data,
                             status_code=status.HTTP_400_BAD_REQUEST)
    except BackendError:
        return _render_panel(request, session, current, "inventory",
                             flash_message=flash(FLASH_ERROR, "Failed to add item."),
                             form_data=form_data,
                             status_code=status.HTTP_503_SERVICE_UNAVAILABLE)
    return _render_panel(request, session, current, "inventory",
                         flash_message=flash(FLASH_SUCCESS, f"{item.name} added."))


@router.post("/items/{item_id}/toggle", response_class=HTMLResponse, include_in_schema=False)
def toggle_item(item_id: int, request: Request, session: SessionDep, current: AdminIdentityDep):
    try:
        item = crud_items.toggle_availability(session, item_id)
    except NotFoundError:
        raise HTTPException(status_code=404, detail="Item not found")
    except BackendError:
        return _render_panel(request, session, current, "inventory",
                             flash_message=flash(FLASH_ERROR, "Failed to update item."),
                             status_code=status.HTTP_503_SERVICE_UNAVAILABLE)
    state = "available" if item.is_available else "unavailable"
    return _render_panel(request, session, current, "inventory",
                         flash_message=flash(FLASH_SUCCESS, f"{item.name} is now {state}."))


@router.post("/items/{item_id}/delete", response_class=HTMLResponse, include_in_schema=False)
async def delete_item(item_id: int, request: Request, session: SessionDep, current: AdminIdentityDep):
    form = await request.form()
    if not _confirmed(form):
        return _render_panel(request, session, current, "inventory",
                             errors=["Please confirm that the item should be deleted."],
                             status_code=status.HTTP_400_BAD_REQUEST)
    try:
        crud_items.delete_item(session, item_id)
    except NotFoundError:
        raise HTTPException(status_code=404, detail="Item not found")
    except BackendError:
        return _render_panel(request, session, current, "inventory",
                             flash_message=flash(FLASH_ERROR, "Failed to delete item."),
                             status_code=status.HTTP_503_SERVICE_UNAVAILABLE)
    return _render_panel(request, session, current, "inventory",
                         flash_message=flash(FLASH_SUCCESS, "Item deleted."))
