"""
HTTP plumbing shared by the Donate, Request Item and Item Detail wizards.

Each wizard keeps its ``WizardState`` in its own signed cookie. A request
loads the state, applies exactly one wizard action and writes the state
back; successful actions redirect to the wizard page (POST/redirect/GET),
rejected ones re-render it with the validation messages.
"""

import logging
from dataclasses import dataclass
from typing import Annotated, Callable, Optional

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import HTMLResponse, RedirectResponse, Response
from itsdangerous import BadSignature, URLSafeSerializer
from pydantic import ValidationError
from sqlmodel import Session

from addresses import ContactFields
from config import settings
from crud import addresses as crud_addresses
from crud import items as crud_items
from crud import requests as crud_requests
from db import SessionDep
from errors import BackendError, FormValidationError
from identity import Identity
from wizard import FlowKind, SubmissionWizard, Submission, WizardFlow, WizardState, WizardStep
from .auth import OptionalIdentityDep
from .common import FLASH_ERROR, FLASH_SUCCESS, flash, form_text, render

logger = logging.getLogger(__name__)

wizard_serializer = URLSafeSerializer(settings.SECRET_KEY, salt="wizard")

SUCCESS_MESSAGES = {
    FlowKind.DONATION: "Thank you! Your donation has been submitted for review.",
    FlowKind.REQUEST: "Request submitted successfully! We will review it shortly.",
    FlowKind.ITEM_REQUEST: "Request submitted successfully!",
}

FAILURE_MESSAGES = {
    FlowKind.DONATION: "Failed to submit donation. Please try again.",
    FlowKind.REQUEST: "Failed to submit request. Please try again.",
    FlowKind.ITEM_REQUEST: "Failed to submit request. Please try again.",
}


@dataclass
class WizardBinding:
    """One wizard flow mounted at one URL."""

    flow: WizardFlow
    base_path: str
    cookie_name: str
    item: Optional[object] = None


def persist_submission(session: Session, identity: Identity, submission: Submission):
    if submission.kind == FlowKind.DONATION:
        return crud_items.create_donation(session, donor_id=identity.id, submission=submission)
    return crud_requests.create_request(
        session,
        user_id=identity.id,
        user_email=identity.email,
        user_name=crud_requests.requester_name(identity.profile, identity.email),
        submission=submission,
    )


def _read_state(request: Request, binding: WizardBinding, identity: Identity) -> Optional[WizardState]:
    raw = request.cookies.get(binding.cookie_name)
    if not raw:
        return None
    try:
        state = WizardState.model_validate(wizard_serializer.loads(raw))
    except (BadSignature, ValidationError):
        logger.warning("Discarding unreadable %s wizard cookie", binding.flow.kind.value)
        return None
    if state.user_id != identity.id or state.kind != binding.flow.kind:
        return None
    return state


def load_wizard(
    request: Request,
    session: Session,
    binding: WizardBinding,
    identity: Identity,
) -> SubmissionWizard:
    addresses = crud_addresses.list_addresses(session, identity.id)
    context = {
        "addresses": addresses,
        "profile": identity.profile,
        "email": identity.email,
        "default_country": settings.DEFAULT_COUNTRY,
    }
    state = _read_state(request, binding, identity)
    if state is None:
        return SubmissionWizard.new(binding.flow, user_id=identity.id, **context)
    return SubmissionWizard(state, binding.flow, **context)


def save_wizard(response: Response, binding: WizardBinding, wizard: SubmissionWizard) -> None:
    response.set_cookie(
        key=binding.cookie_name,
        value=wizard_serializer.dumps(wizard.state.model_dump(mode="json")),
        httponly=True,
        secure=settings.COOKIE_SECURE,
        samesite="lax",
        max_age=settings.SESSION_MAX_AGE,
    )


def render_wizard(
    request: Request,
    binding: WizardBinding,
    wizard: SubmissionWizard,
    identity: Identity,
    *,
    errors=None,
    flash_message: Optional[dict] = None,
    status_code: int = status.HTTP_200_OK,
) -> HTMLResponse:
    shipping = None
    if wizard.step == WizardStep.REVIEW:
        try:
            shipping = wizard.shipping()
        except FormValidationError:
            shipping = None
    response = render(
        request,
        "wizard.html",
        identity,
        errors=errors,
        flash_message=flash_message,
        status_code=status_code,
        wizard=wizard,
        state=wizard.state,
        flow=wizard.flow,
        base_path=binding.base_path,
        item=binding.item,
        summary=wizard.summary(),
        shipping=shipping,
    )
    save_wizard(response, binding, wizard)
    return response


def register_wizard_routes(
    router: APIRouter,
    path: str,
    get_binding: Callable[..., WizardBinding],
) -> None:
    """
    Mount the wizard page at ``path`` and its actions under it.
    ``get_binding`` is a dependency that may use path parameters.
    """
    BindingDep = Annotated[WizardBinding, Depends(get_binding)]

    async def run_action(
        request: Request,
        session: Session,
        binding: WizardBinding,
        identity: Optional[Identity],
        action: Callable[[SubmissionWizard, dict], None],
    ):
        if identity is None:
            return RedirectResponse(url="/login", status_code=303)
        form = await request.form()
        try:
            wizard = load_wizard(request, session, binding, identity)
        except BackendError:
            return render(request, "error.html", identity,
                          flash_message=flash(FLASH_ERROR, FAILURE_MESSAGES[binding.flow.kind]),
                          status_code=status.HTTP_503_SERVICE_UNAVAILABLE)
        try:
            action(wizard, form)
        except FormValidationError as exc:
            return render_wizard(request, binding, wizard, identity,
                                 errors=exc.messages, status_code=status.HTTP_400_BAD_REQUEST)

        response = RedirectResponse(url=binding.base_path, status_code=303)
        save_wizard(response, binding, wizard)
        return response

    @router.get(path, response_class=HTMLResponse, include_in_schema=False)
    def wizard_page(
        request: Request,
        session: SessionDep,
        binding: BindingDep,
        current: OptionalIdentityDep,
        category: Optional[str] = None,
        item: Optional[str] = None,
    ):
        if current is None:
            return RedirectResponse(url="/login", status_code=303)
        try:
            wizard = load_wizard(request, session, binding, current)
        except BackendError:
            return render(request, "error.html", current,
                          flash_message=flash(FLASH_ERROR, FAILURE_MESSAGES[binding.flow.kind]),
                          status_code=status.HTTP_503_SERVICE_UNAVAILABLE)

        errors = []
        if category and wizard.step == WizardStep.SELECT_CATEGORY:
            # navigation parameters, e.g. /request?item=...&category=book
            try:
                wizard.start(category=category, item_name=item)
            except FormValidationError as exc:
                errors = exc.messages
        return render_wizard(request, binding, wizard, current, errors=errors)

    @router.post(path + "/category", include_in_schema=False)
    async def choose_category(request: Request, session: SessionDep, binding: BindingDep,
                              current: OptionalIdentityDep):
        return await run_action(
            request, session, binding, current,
            lambda wizard, form: wizard.select_category(form_text(form, "category")),
        )

    @router.post(path + "/category/clear", include_in_schema=False)
    async def clear_category(request: Request, session: SessionDep, binding: BindingDep,
                             current: OptionalIdentityDep):
        return await run_action(
            request, session, binding, current,
            lambda wizard, form: wizard.clear_category(),
        )

    @router.post(path + "/details", include_in_schema=False)
    async def enter_details(request: Request, session: SessionDep, binding: BindingDep,
                            current: OptionalIdentityDep):
        def action(wizard: SubmissionWizard, form) -> None:
            wizard.submit_details(
                name=form_text(form, "name"),
                description=form_text(form, "description"),
                quantity=form.get("quantity"),
                condition=form_text(form, "condition"),
                image_url=form_text(form, "image_url"),
            )

        return await run_action(request, session, binding, current, action)

    @router.post(path + "/address-mode", include_in_schema=False)
    async def address_mode(request: Request, session: SessionDep, binding: BindingDep,
                           current: OptionalIdentityDep):
        return await run_action(
            request, session, binding, current,
            lambda wizard, form: wizard.use_new_address(form_text(form, "mode") == "new"),
        )

    @router.post(path + "/contact", include_in_schema=False)
    async def enter_contact(request: Request, session: SessionDep, binding: BindingDep,
                            current: OptionalIdentityDep):
        def action(wizard: SubmissionWizard, form) -> None:
            fields = None
            if wizard.use_new_address_form:
                fields = ContactFields(
                    **{key: form_text(form, key) for key in ContactFields.model_fields}
                )
            wizard.submit_contact(fields=fields, address_id=form_text(form, "address_id") or None)

        return await run_action(request, session, binding, current, action)

    @router.post(path + "/back", include_in_schema=False)
    async def go_back(request: Request, session: SessionDep, binding: BindingDep,
                      current: OptionalIdentityDep):
        return await run_action(
            request, session, binding, current,
            lambda wizard, form: wizard.back(),
        )

    @router.post(path + "/restart", include_in_schema=False)
    async def restart(request: Request, session: SessionDep, binding: BindingDep,
                      current: OptionalIdentityDep):
        return await run_action(
            request, session, binding, current,
            lambda wizard, form: wizard.start_over(),
        )

    @router.post(path + "/submit", response_class=HTMLResponse, include_in_schema=False)
    def submit(request: Request, session: SessionDep, binding: BindingDep,
               current: OptionalIdentityDep):
        if current is None:
            return RedirectResponse(url="/login", status_code=303)
        try:
            wizard = load_wizard(request, session, binding, current)
        except BackendError:
            return render(request, "error.html", current,
                          flash_message=flash(FLASH_ERROR, FAILURE_MESSAGES[binding.flow.kind]),
                          status_code=status.HTTP_503_SERVICE_UNAVAILABLE)

        try:
            wizard.submit(lambda submission: persist_submission(session, current, submission))
        except FormValidationError as exc:
            return render_wizard(request, binding, wizard, current,
                                 errors=exc.messages, status_code=status.HTTP_400_BAD_REQUEST)
        except BackendError:
            return render_wizard(request, binding, wizard, current,
                                 flash_message=flash(FLASH_ERROR, FAILURE_MESSAGES[binding.flow.kind]),
                                 status_code=status.HTTP_503_SERVICE_UNAVAILABLE)

        return render_wizard(request, binding, wizard, current,
                             flash_message=flash(FLASH_SUCCESS, SUCCESS_MESSAGES[binding.flow.kind]))
