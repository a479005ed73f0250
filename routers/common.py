from typing import List, Optional

from fastapi import Request, status
from fastapi.responses import HTMLResponse
from fastapi.templating import Jinja2Templates
from pydantic import ValidationError

from config import settings
from models import CATEGORY_DESCRIPTIONS, CATEGORY_LABELS, CONDITIONS, ItemCategory

templates = Jinja2Templates(directory="templates")
templates.env.globals.update(
    project_name=settings.PROJECT_NAME,
    categories=list(ItemCategory),
    category_labels=CATEGORY_LABELS,
    category_descriptions=CATEGORY_DESCRIPTIONS,
    conditions=CONDITIONS,
    default_country=settings.DEFAULT_COUNTRY,
)

FLASH_SUCCESS = "success"
FLASH_ERROR = "error"

GENERIC_FAILURE = "Something went wrong. Please try again."


def flash(kind: str, text: str) -> dict:
    return {"kind": kind, "text": text}


def form_text(form, key: str) -> str:
    value = form.get(key)
    return value.strip() if isinstance(value, str) else ""


def render(
    request: Request,
    name: str,
    identity=None,
    *,
    errors: Optional[List[str]] = None,
    flash_message: Optional[dict] = None,
    status_code: int = status.HTTP_200_OK,
    **context,
) -> HTMLResponse:
    response = templates.TemplateResponse(
        request,
        name,
        {
            "current_user": identity,
            "is_admin": bool(identity and identity.is_admin),
            "errors": errors or [],
            "flash_message": flash_message,
            **context,
        },
    )
    response.status_code = status_code
    return response


def validation_messages(exc: ValidationError) -> List[str]:
    messages = []
    for error in exc.errors():
        field = ".".join(str(part) for part in error["loc"])
        messages.append(f"{field.capitalize()}: {error['msg']}")
    return messages
