from typing import Annotated, Optional

from fastapi import APIRouter, Cookie, Depends, HTTPException, Request, Response, status
from fastapi.responses import HTMLResponse, RedirectResponse
from pydantic import ValidationError

from config import settings
from db import SessionDep
from errors import AuthError, BackendError
from identity import Identity, IdentityProvider, get_identity_provider
from schemas import IdentityRead, LoginData, SignUpData
from .common import FLASH_ERROR, GENERIC_FAILURE, flash, form_text, render, validation_messages

router = APIRouter(tags=["auth"])

SESSION_COOKIE = "session"

ProviderDep = Annotated[IdentityProvider, Depends(get_identity_provider)]


def get_optional_identity(
    session: SessionDep,
    provider: ProviderDep,
    session_token: Optional[str] = Cookie(default=None, alias=SESSION_COOKIE),
) -> Optional[Identity]:
    """
    Returns the signed-in identity, or None if not logged in / invalid.
    Used by pages that render for everyone.
    """
    return provider.get_session(session, session_token)


OptionalIdentityDep = Annotated[Optional[Identity], Depends(get_optional_identity)]


def get_current_identity(identity: OptionalIdentityDep) -> Identity:
    if identity is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not logged in")
    return identity


CurrentIdentityDep = Annotated[Identity, Depends(get_current_identity)]


def require_admin(identity: CurrentIdentityDep) -> Identity:
    if not identity.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admins only")
    return identity


AdminIdentityDep = Annotated[Identity, Depends(require_admin)]


def set_session_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        key=SESSION_COOKIE,
        value=token,
        httponly=True,
        secure=settings.COOKIE_SECURE,
        samesite="lax",
        max_age=settings.SESSION_MAX_AGE,
    )


@router.get("/login", response_class=HTMLResponse, include_in_schema=False)
def login_page(request: Request, current: OptionalIdentityDep):
    if current is not None:
        return RedirectResponse(url="/", status_code=303)
    return render(request, "login.html", form_data={})


@router.post("/login", include_in_schema=False)
async def login(request: Request, session: SessionDep, provider: ProviderDep):
    form = await request.form()
    form_data = {"email": form_text(form, "email")}

    try:
        payload = LoginData(email=form_data["email"], password=form.get("password") or "")
        identity = provider.sign_in(session, payload.email, payload.password)
    except ValidationError as exc:
        return render(request, "login.html", errors=validation_messages(exc),
                      form_data=form_data, status_code=400)
    except AuthError as exc:
        return render(request, "login.html", errors=[str(exc)],
                      form_data=form_data, status_code=400)
    except BackendError:
        return render(request, "login.html", flash_message=flash(FLASH_ERROR, GENERIC_FAILURE),
                      form_data=form_data, status_code=503)

    resp = RedirectResponse(url="/", status_code=303)
    set_session_cookie(resp, provider.issue_token(identity))
    return resp


@router.get("/signup", response_class=HTMLResponse, include_in_schema=False)
def signup_page(request: Request, current: OptionalIdentityDep):
    if current is not None:
        return RedirectResponse(url="/", status_code=303)
    return render(request, "signup.html", form_data={})


@router.post("/signup", include_in_schema=False)
async def signup(request: Request, session: SessionDep, provider: ProviderDep):
    form = await request.form()
    form_data = {"email": form_text(form, "email"), "name": form_text(form, "name")}

    password = form.get("password") or ""
    if password != (form.get("confirm_password") or password):
        return render(request, "signup.html", errors=["Passwords do not match."],
                      form_data=form_data, status_code=400)

    try:
        payload = SignUpData(email=form_data["email"], password=password, name=form_data["name"])
        identity = provider.sign_up(session, payload.email, payload.password, payload.name)
    except ValidationError as exc:
        return render(request, "signup.html", errors=validation_messages(exc),
                      form_data=form_data, status_code=400)
    except AuthError as exc:
        return render(request, "signup.html", errors=[str(exc)],
                      form_data=form_data, status_code=400)
    except BackendError:
        return render(request, "signup.html", flash_message=flash(FLASH_ERROR, GENERIC_FAILURE),
                      form_data=form_data, status_code=503)

    resp = RedirectResponse(url="/", status_code=303)
    set_session_cookie(resp, provider.issue_token(identity))
    return resp


@router.post("/logout", include_in_schema=False)
def logout(current: OptionalIdentityDep, provider: ProviderDep):
    """
    Clear the session cookie and redirect to home.
    """
    if current is not None:
        provider.sign_out(current)
    response = RedirectResponse(url="/", status_code=303)
    response.delete_cookie(SESSION_COOKIE)
    return response


@router.get("/me", response_model=IdentityRead)
def read_me(current: CurrentIdentityDep):
    """
    Get info about the currently logged-in user.
    """
    return IdentityRead(
        id=current.id,
        email=current.email,
        name=current.name,
        role=current.role,
        is_admin=current.is_admin,
    )
