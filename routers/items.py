from typing import List, Optional

from fastapi import APIRouter, HTTPException, Request, status
from fastapi.responses import HTMLResponse

from crud import items as crud_items
from db import SessionDep
from errors import BackendError, NotFoundError
from models import ItemCategory
from schemas import DonationItemRead
from wizard import FlowKind, WizardFlow
from .auth import OptionalIdentityDep
from .common import FLASH_ERROR, GENERIC_FAILURE, flash, render
from .wizards import WizardBinding, register_wizard_routes

router = APIRouter(tags=["items"])


def _category_filter(category: Optional[str]) -> Optional[str]:
    if not category or category == "all":
        return None
    try:
        return ItemCategory(category).value
    except ValueError:
        raise HTTPException(status_code=400, detail="Unknown category") from None


@router.get("/items", response_class=HTMLResponse, include_in_schema=False)
def browse_items(
    request: Request,
    session: SessionDep,
    current: OptionalIdentityDep,
    category: Optional[str] = None,
    q: Optional[str] = None,
):
    """
    Available items, optionally filtered by category and a search string.
    """
    selected = _category_filter(category)
    try:
        items = crud_items.list_available_items(session, category=selected, search=q)
    except BackendError:
        return render(request, "items.html", current, items=[], selected_category=selected or "all",
                      search=q or "", flash_message=flash(FLASH_ERROR, GENERIC_FAILURE),
                      status_code=status.HTTP_503_SERVICE_UNAVAILABLE)
    return render(request, "items.html", current, items=items,
                  selected_category=selected or "all", search=q or "")


@router.get("/items/{item_id}", response_class=HTMLResponse, include_in_schema=False)
def item_detail(item_id: int, request: Request, session: SessionDep, current: OptionalIdentityDep):
    try:
        item = crud_items.get_item(session, item_id, available_only=True)
        related = crud_items.related_items(session, item)
    except NotFoundError:
        raise HTTPException(status_code=404, detail="Item not found")
    except BackendError:
        return render(request, "error.html", current, flash_message=flash(FLASH_ERROR, GENERIC_FAILURE),
                      status_code=status.HTTP_503_SERVICE_UNAVAILABLE)
    return render(request, "item_detail.html", current, item=item, related=related)


@router.get("/api/items", response_model=List[DonationItemRead])
def list_items(session: SessionDep, category: Optional[str] = None, q: Optional[str] = None):
    """
    List available items, optionally filtered by category and search text.
    """
    try:
        return crud_items.list_available_items(session, category=_category_filter(category), search=q)
    except BackendError:
        raise HTTPException(status_code=503, detail=GENERIC_FAILURE)


@router.get("/api/items/{item_id}", response_model=DonationItemRead)
def get_item(item_id: int, session: SessionDep):
    """
    Get a single available item by ID.
    """
    try:
        return crud_items.get_item(session, item_id, available_only=True)
    except NotFoundError:
        raise HTTPException(status_code=404, detail="Item not found")
    except BackendError:
        raise HTTPException(status_code=503, detail=GENERIC_FAILURE)


def get_item_binding(item_id: int, session: SessionDep) -> WizardBinding:
    try:
        item = crud_items.get_item(session, item_id, available_only=True)
    except NotFoundError:
        raise HTTPException(status_code=404, detail="Item not found")
    except BackendError:
        raise HTTPException(status_code=503, detail=GENERIC_FAILURE)

    category = ItemCategory(item.category)
    flow = WizardFlow(
        kind=FlowKind.ITEM_REQUEST,
        title=f"Request {item.name}",
        categories=(category,),
        preset_category=category,
        preset_name=item.name,
        lock_name=True,
        description_default="Requesting {name}",
        max_quantity=item.quantity,
    )
    return WizardBinding(
        flow=flow,
        base_path=f"/items/{item.id}/request",
        cookie_name=f"wizard_item_{item.id}",
        item=item,
    )


register_wizard_routes(router, "/items/{item_id}/request", get_item_binding)
