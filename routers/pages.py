import logging

from fastapi import APIRouter, Request, status
from fastapi.responses import HTMLResponse
from pydantic import ValidationError

from crud import items as crud_items
from db import SessionDep
from errors import BackendError
from schemas import ContactMessage
from .auth import OptionalIdentityDep
from .common import FLASH_SUCCESS, flash, form_text, render, validation_messages

logger = logging.getLogger(__name__)

router = APIRouter(tags=["pages"])

CONTACT_FIELDS = ("name", "email", "subject", "message")


@router.get("/", response_class=HTMLResponse, include_in_schema=False)
def home(request: Request, session: SessionDep, current: OptionalIdentityDep):
    """
    Landing page: category overview, a few recent items and the calls to action.
    """
    try:
        recent = crud_items.list_available_items(session)[:6]
    except BackendError:
        # the landing page still renders without the item strip
        recent = []
    return render(request, "index.html", current, recent_items=recent)


@router.get("/contact", response_class=HTMLResponse, include_in_schema=False)
def contact_page(request: Request, current: OptionalIdentityDep):
    form_data = {"name": current.name, "email": current.email} if current else {}
    return render(request, "contact.html", current, form_data=form_data)


@router.post("/contact", response_class=HTMLResponse, include_in_schema=False)
async def send_contact(request: Request, current: OptionalIdentityDep):
    """
    Validate the message and acknowledge it. Messages are not stored.
    """
    form = await request.form()
    form_data = {key: form_text(form, key) for key in CONTACT_FIELDS}
    try:
        message = ContactMessage(**form_data)
    except ValidationError as exc:
        return render(request, "contact.html", current, errors=validation_messages(exc),
                      form_data=form_data, status_code=status.HTTP_400_BAD_REQUEST)

    logger.info("Contact message from %s: %s", message.email, message.subject)
    return render(request, "contact.html", current, form_data={},
                  flash_message=flash(FLASH_SUCCESS, "Thank you! Your message has been sent."))
