"""
Multi-step submission wizard shared by the Donate, Request Item and Item
Detail flows.

Steps::

    select_category -> enter_details -> enter_contact -> review
        -> submitting -> success | failed (-> review)

The whole wizard lives in a ``WizardState`` pydantic model so that it can be
carried between HTTP requests (see ``routers/wizards.py``). A
``SubmissionWizard`` wraps one state together with the user's current saved
addresses and profile, and exposes one method per user action. Every action
either moves the state forward/backward or raises ``FormValidationError``
and leaves the step unchanged.

The flow-specific bits (which categories may be picked, whether the item
name is preset, the donation-only fields) come from a ``WizardFlow``.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional, Sequence, Tuple, TypeVar

from pydantic import BaseModel, Field

from addresses import (
    ContactFields,
    ShippingSnapshot,
    fill_empty_fields,
    find_address,
    profile_contact,
    resolve_shipping_info,
    select_default_address,
)
from config import settings
from errors import BackendError, FormValidationError, MissingAddressSelection
from models import CATEGORY_LABELS, CONDITIONS, ItemCategory, UserAddress, UserProfile

logger = logging.getLogger(__name__)

T = TypeVar("T")

MAX_DESCRIPTION_LENGTH = 1000


class WizardStep(str, Enum):
    SELECT_CATEGORY = "select_category"
    ENTER_DETAILS = "enter_details"
    ENTER_CONTACT = "enter_contact"
    REVIEW = "review"
    SUBMITTING = "submitting"
    SUCCESS = "success"
    FAILED = "failed"


# numbering shown in the progress bar
STEP_NUMBERS = {
    WizardStep.SELECT_CATEGORY: 1,
    WizardStep.ENTER_DETAILS: 2,
    WizardStep.ENTER_CONTACT: 3,
    WizardStep.REVIEW: 4,
    WizardStep.SUBMITTING: 4,
    WizardStep.FAILED: 4,
    WizardStep.SUCCESS: 4,
}

PREVIOUS_STEP = {
    WizardStep.ENTER_DETAILS: WizardStep.SELECT_CATEGORY,
    WizardStep.ENTER_CONTACT: WizardStep.ENTER_DETAILS,
    WizardStep.REVIEW: WizardStep.ENTER_CONTACT,
}

# the shipping choice has been shown back to the user
REVIEWED_STEPS = (WizardStep.REVIEW, WizardStep.SUBMITTING, WizardStep.FAILED)


class FlowKind(str, Enum):
    DONATION = "donation"
    REQUEST = "request"
    ITEM_REQUEST = "item_request"


@dataclass(frozen=True)
class WizardFlow:
    kind: FlowKind
    title: str
    categories: Tuple[ItemCategory, ...] = tuple(ItemCategory)
    preset_category: Optional[ItemCategory] = None
    preset_name: Optional[str] = None
    # the item name cannot be edited (requesting a listed item)
    lock_name: bool = False
    # "{name}" is replaced with the item name
    description_default: Optional[str] = None
    # stock of the listed item, if any
    max_quantity: Optional[int] = None

    @property
    def is_donation(self) -> bool:
        return self.kind == FlowKind.DONATION


class ItemDetails(BaseModel):
    name: str = ""
    description: str = ""
    quantity: int = 1
    condition: str = "Good"
    image_url: str = ""


class WizardState(BaseModel):
    kind: FlowKind
    user_id: Optional[int] = None
    step: WizardStep = WizardStep.SELECT_CATEGORY
    category: Optional[ItemCategory] = None
    details: ItemDetails = Field(default_factory=ItemDetails)
    contact: ContactFields = Field(default_factory=ContactFields)
    selected_address_id: Optional[int] = None
    use_new_address_form: bool = False
    seen_address_ids: List[int] = Field(default_factory=list)
    profile_merged: bool = False


class Submission(BaseModel):
    """Everything the store needs to persist one wizard run."""

    kind: FlowKind
    category: ItemCategory
    details: ItemDetails
    shipping: ShippingSnapshot


def coerce_quantity(value) -> int:
    """
    Normalize a quantity from a form. Anything that is not a positive
    integer becomes 1.
    """
    if isinstance(value, bool) or value is None:
        return 1
    if isinstance(value, float):
        value = int(value)
    try:
        quantity = int(str(value).strip())
    except ValueError:
        return 1
    return quantity if quantity >= 1 else 1


class SubmissionWizard:
    def __init__(
        self,
        state: WizardState,
        flow: WizardFlow,
        addresses: Sequence[UserAddress] = (),
        profile: Optional[UserProfile] = None,
        email: str = "",
        default_country: Optional[str] = None,
    ):
        self.state = state
        self.flow = flow
        self.addresses: List[UserAddress] = list(addresses)
        self.profile = profile
        self.email = email
        self.default_country = default_country or settings.DEFAULT_COUNTRY
        self.sync_addresses()

    @classmethod
    def new(cls, flow: WizardFlow, user_id: Optional[int] = None, **kwargs) -> "SubmissionWizard":
        wizard = cls(WizardState(kind=flow.kind, user_id=user_id), flow, **kwargs)
        wizard.start()
        return wizard

    # ------------------------------------------------------------------
    # read-only views
    # ------------------------------------------------------------------

    @property
    def step(self) -> WizardStep:
        return self.state.step

    @property
    def step_number(self) -> int:
        return STEP_NUMBERS[self.state.step]

    @property
    def use_new_address_form(self) -> bool:
        # with no saved addresses the form is the only source
        return self.state.use_new_address_form or not self.addresses

    @property
    def fallback(self) -> ContactFields:
        return profile_contact(self.profile, self.email)

    @property
    def can_go_back(self) -> bool:
        return self.state.step in PREVIOUS_STEP

    def selected_address(self) -> Optional[UserAddress]:
        return find_address(self.addresses, self.state.selected_address_id)

    def shipping(self) -> ShippingSnapshot:
        """Resolve and validate the shipping snapshot for the current input."""
        if not self.use_new_address_form and self.state.selected_address_id is None:
            raise MissingAddressSelection()
        return resolve_shipping_info(
            self.addresses,
            self.state.selected_address_id,
            self.use_new_address_form,
            self.state.contact,
            profile_fallback=self.fallback,
            email=self.email,
            default_country=self.default_country,
        )

    def summary(self) -> dict:
        details = self.state.details
        category = self.state.category
        return {
            "headline": f"{details.name} ×{details.quantity}",
            "name": details.name,
            "quantity": details.quantity,
            "category": category.value if category else None,
            "category_label": CATEGORY_LABELS[category] if category else None,
            "description": details.description,
            "condition": details.condition if self.flow.is_donation else None,
            "image_url": details.image_url if self.flow.is_donation else None,
        }

    # ------------------------------------------------------------------
    # address list
    # ------------------------------------------------------------------

    def sync_addresses(self) -> None:
        """
        Re-run the selection policy when the saved address list changed since
        the state was last used, or the selected address disappeared.

        Once the contact step is done the selection is frozen: a stale id is
        left in place so that ``submit`` fails and sends the user back to
        choose again.
        """
        ids = [address.id for address in self.addresses]
        selected = self.state.selected_address_id
        stale = selected is not None and find_address(self.addresses, selected) is None
        if ids == self.state.seen_address_ids and not stale:
            return
        self.state.seen_address_ids = ids
        if self.state.step in REVIEWED_STEPS:
            return
        self.state.selected_address_id = select_default_address(self.addresses)

    # ------------------------------------------------------------------
    # transitions
    # ------------------------------------------------------------------

    def _move(self, step: WizardStep) -> None:
        logger.debug(
            "%s wizard: %s -> %s", self.flow.kind.value, self.state.step.value, step.value
        )
        self.state.step = step

    def _require(self, *steps: WizardStep) -> None:
        if self.state.step not in steps:
            current = self.state.step.value.replace("_", " ")
            raise FormValidationError(f"That action is not available at the {current} step.")

    def _parse_category(self, value) -> ItemCategory:
        try:
            category = ItemCategory(value)
        except ValueError:
            raise FormValidationError("Please choose one of the listed categories.") from None
        if category not in self.flow.categories:
            raise FormValidationError("That category is not available for this item.")
        return category

    def start(self, category=None, item_name: Optional[str] = None) -> None:
        """
        Apply navigation presets. A pre-supplied category skips the category
        step.
        """
        self._require(WizardStep.SELECT_CATEGORY)
        name = item_name or self.flow.preset_name
        if name:
            self.state.details.name = name.strip()
        category = category or self.flow.preset_category
        if category:
            self.state.category = self._parse_category(category)
            self._move(WizardStep.ENTER_DETAILS)

    def select_category(self, value) -> None:
        self._require(WizardStep.SELECT_CATEGORY)
        self.state.category = self._parse_category(value)
        self._move(WizardStep.ENTER_DETAILS)

    def clear_category(self) -> None:
        self._require(WizardStep.SELECT_CATEGORY)
        self.state.category = None

    def submit_details(
        self,
        name: str,
        description: str,
        quantity=1,
        condition: Optional[str] = None,
        image_url: Optional[str] = None,
    ) -> None:
        self._require(WizardStep.ENTER_DETAILS)
        name = (name or "").strip()
        if self.flow.lock_name and self.flow.preset_name:
            name = self.flow.preset_name
        description = (description or "").strip()
        if not description and self.flow.description_default and name:
            description = self.flow.description_default.format(name=name)

        details = ItemDetails(name=name, description=description, quantity=coerce_quantity(quantity))
        if self.flow.is_donation:
            details.condition = condition if condition in CONDITIONS else "Good"
            details.image_url = (image_url or "").strip()
        # keep what was typed even if it is rejected below
        self.state.details = details

        self._check_details()
        self._enter_contact()

    def _check_details(self) -> None:
        details = self.state.details
        errors = []
        if self.state.category is None:
            errors.append("Please choose a category first.")
        elif self.state.category not in self.flow.categories:
            errors.append("That category is not available for this item.")
        if not details.name:
            errors.append("Item name is required.")
        limit = self.flow.max_quantity
        if limit is not None and details.quantity > limit:
            errors.append(f"Requested quantity exceeds available quantity ({limit}).")
        if not details.description:
            errors.append("Description is required.")
        elif len(details.description) > MAX_DESCRIPTION_LENGTH:
            errors.append(f"Description must be at most {MAX_DESCRIPTION_LENGTH} characters.")
        if details.image_url and not details.image_url.startswith(("http://", "https://")):
            errors.append("Image URL must start with http:// or https://.")
        if errors:
            raise FormValidationError(errors)

    def _enter_contact(self) -> None:
        self._move(WizardStep.ENTER_CONTACT)
        if self.selected_address() is None:
            self.state.selected_address_id = select_default_address(self.addresses)
        if not self.addresses and not self.state.profile_merged:
            self.state.contact = fill_empty_fields(self.state.contact, self.fallback)
            self.state.profile_merged = True

    def choose_address(self, address_id) -> None:
        self._require(WizardStep.ENTER_CONTACT)
        try:
            address_id = int(address_id)
        except (TypeError, ValueError):
            raise MissingAddressSelection() from None
        if find_address(self.addresses, address_id) is None:
            raise MissingAddressSelection(address_id)
        self.state.selected_address_id = address_id
        self.state.use_new_address_form = False

    def use_new_address(self, enabled: bool = True) -> None:
        self._require(WizardStep.ENTER_CONTACT)
        self.state.use_new_address_form = enabled
        if not enabled and self.state.selected_address_id is None:
            self.state.selected_address_id = select_default_address(self.addresses)

    def submit_contact(
        self,
        fields: Optional[ContactFields] = None,
        address_id=None,
        use_new_address: Optional[bool] = None,
    ) -> ShippingSnapshot:
        self._require(WizardStep.ENTER_CONTACT)
        if use_new_address is not None:
            self.state.use_new_address_form = use_new_address
        if fields is not None and self.use_new_address_form:
            self.state.contact = fields
        if address_id not in (None, "") and not self.use_new_address_form:
            self.choose_address(address_id)
        snapshot = self.shipping()
        # pin the source that the review page shows
        self.state.use_new_address_form = self.use_new_address_form
        self._move(WizardStep.REVIEW)
        return snapshot

    def back(self) -> None:
        previous = PREVIOUS_STEP.get(self.state.step)
        if previous is None:
            raise FormValidationError("There is no previous step.")
        self._move(previous)

    def _revalidate(self) -> Submission:
        """
        Re-check every guard before submitting; the address list may have
        changed since the review page was shown.
        """
        try:
            self._check_details()
        except FormValidationError:
            self._move(WizardStep.ENTER_DETAILS)
            raise
        try:
            shipping = self.shipping()
        except FormValidationError:
            self._enter_contact()
            raise
        return Submission(
            kind=self.flow.kind,
            category=self.state.category,
            details=self.state.details.model_copy(),
            shipping=shipping,
        )

    def submit(self, persist: Callable[[Submission], T]) -> T:
        """
        Persist the reviewed submission with one call to ``persist``.

        On ``BackendError`` the wizard passes through ``failed`` back to
        ``review`` with every field intact, and the error is re-raised for
        the caller to report. On success the fields are cleared and the
        wizard rests at ``success``.
        """
        self._require(WizardStep.REVIEW)
        submission = self._revalidate()
        self._move(WizardStep.SUBMITTING)
        try:
            result = persist(submission)
        except BackendError:
            self._move(WizardStep.FAILED)
            self._move(WizardStep.REVIEW)
            raise
        logger.info("%s submitted: %s", self.flow.kind.value, submission.details.name)
        self._move(WizardStep.SUCCESS)
        self._reset_fields()
        return result

    def _reset_fields(self) -> None:
        state = self.state
        state.category = None
        state.details = ItemDetails()
        state.contact = ContactFields()
        state.use_new_address_form = False
        state.profile_merged = False
        state.selected_address_id = select_default_address(self.addresses)
        if not self.addresses:
            state.contact = fill_empty_fields(state.contact, self.fallback)
            state.profile_merged = True

    def start_over(self) -> None:
        """Leave the success page, or abandon the flow, and begin again."""
        self._reset_fields()
        self._move(WizardStep.SELECT_CATEGORY)
        self.start()
