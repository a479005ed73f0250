from dataclasses import replace

import pytest

from addresses import ContactFields
from errors import BackendError, FormValidationError, IncompleteShippingInfo, MissingAddressSelection
from models import ItemCategory, UserProfile
from wizard import (
    FlowKind,
    SubmissionWizard,
    WizardFlow,
    WizardState,
    WizardStep,
    coerce_quantity,
)
from tests.factories import asha_profile, make_address

REQUEST_FLOW = WizardFlow(kind=FlowKind.REQUEST, title="Request")
DONATION_FLOW = WizardFlow(kind=FlowKind.DONATION, title="Donate")
ITEM_FLOW = WizardFlow(
    kind=FlowKind.ITEM_REQUEST,
    title="Request Math Textbook",
    categories=(ItemCategory.BOOK,),
    preset_category=ItemCategory.BOOK,
    preset_name="Math Textbook",
    lock_name=True,
    description_default="Requesting {name}",
)


def new_wizard(flow=REQUEST_FLOW, addresses=(), profile=None, **kwargs):
    return SubmissionWizard.new(
        flow,
        user_id=1,
        addresses=addresses,
        profile=profile,
        email="asha@example.com",
        default_country="Sri Lanka",
        **kwargs,
    )


def at_contact(wizard, category="book", name="Notebook"):
    wizard.select_category(category)
    wizard.submit_details(name=name, description="For class", quantity="2")
    return wizard


@pytest.mark.parametrize("value", [0, -5, "abc", None, "", "0", True])
def test_bad_quantities_become_one(value):
    assert coerce_quantity(value) == 1


@pytest.mark.parametrize("value, expected", [(3, 3), ("3", 3), (" 12 ", 12), (2.7, 2)])
def test_good_quantities_are_kept(value, expected):
    assert coerce_quantity(value) == expected


def test_starts_at_category_selection():
    wizard = new_wizard()
    assert wizard.step == WizardStep.SELECT_CATEGORY
    assert wizard.step_number == 1
    assert not wizard.can_go_back


def test_category_preset_skips_first_step():
    wizard = new_wizard()
    wizard.start(category="book", item_name="Math Textbook")

    assert wizard.step == WizardStep.ENTER_DETAILS
    assert wizard.state.category == ItemCategory.BOOK
    assert wizard.state.details.name == "Math Textbook"
    assert wizard.state.details.quantity == 1


def test_unknown_category_is_rejected():
    wizard = new_wizard()
    with pytest.raises(FormValidationError):
        wizard.select_category("crayons")
    assert wizard.step == WizardStep.SELECT_CATEGORY


def test_details_require_name_and_description():
    wizard = new_wizard()
    wizard.select_category("pencil")

    with pytest.raises(FormValidationError) as excinfo:
        wizard.submit_details(name="  ", description="", quantity="-1")

    assert wizard.step == WizardStep.ENTER_DETAILS
    assert "Item name is required." in excinfo.value.messages
    assert "Description is required." in excinfo.value.messages
    assert wizard.state.details.quantity == 1


def test_rejected_details_keep_typed_values():
    wizard = new_wizard()
    wizard.select_category("pencil")
    with pytest.raises(FormValidationError):
        wizard.submit_details(name="Pencils", description="")
    assert wizard.state.details.name == "Pencils"


def test_description_length_limit():
    wizard = new_wizard()
    wizard.select_category("book")
    with pytest.raises(FormValidationError):
        wizard.submit_details(name="Atlas", description="x" * 1001)


def test_category_only_clearable_on_its_own_step():
    wizard = new_wizard()
    wizard.select_category("book")
    with pytest.raises(FormValidationError):
        wizard.clear_category()

    wizard.back()
    wizard.clear_category()
    assert wizard.state.category is None


def test_back_keeps_entered_values():
    wizard = at_contact(new_wizard(), name="Ruler")
    wizard.back()
    assert wizard.step == WizardStep.ENTER_DETAILS
    wizard.back()
    assert wizard.step == WizardStep.SELECT_CATEGORY

    assert wizard.state.details.name == "Ruler"
    assert wizard.state.category == ItemCategory.BOOK


def test_no_addresses_forces_new_form_and_merges_profile():
    wizard = new_wizard(profile=asha_profile())
    wizard.select_category("book")
    wizard.state.contact = ContactFields(phone="0719999999")
    wizard.submit_details(name="Math Textbook", description="Grade 6")

    assert wizard.step == WizardStep.ENTER_CONTACT
    assert wizard.use_new_address_form
    contact = wizard.state.contact
    assert contact.phone == "0719999999"
    assert contact.name == "Asha"
    assert contact.address == "12 Lake Rd"
    assert contact.city == "Colombo"


def test_profile_merge_happens_once():
    wizard = at_contact(new_wizard(profile=asha_profile()))
    wizard.state.contact = ContactFields(name="Cleared On Purpose")
    wizard.back()
    wizard.submit_details(name="Notebook", description="For class")

    assert wizard.state.contact.name == "Cleared On Purpose"
    assert wizard.state.contact.city == ""


def test_primary_address_is_preselected():
    addresses = [make_address(1), make_address(2, is_primary=True)]
    wizard = at_contact(new_wizard(addresses=addresses))

    assert not wizard.use_new_address_form
    assert wizard.state.selected_address_id == 2
    assert wizard.selected_address().id == 2


def test_contact_with_saved_address_reaches_review():
    addresses = [make_address(1), make_address(2)]
    wizard = at_contact(new_wizard(addresses=addresses))

    snapshot = wizard.submit_contact(address_id="2")

    assert wizard.step == WizardStep.REVIEW
    assert snapshot.name == "Receiver 2"
    assert snapshot.email == "asha@example.com"


def test_choosing_unknown_address_is_rejected():
    wizard = at_contact(new_wizard(addresses=[make_address(1)]))
    with pytest.raises(FormValidationError):
        wizard.choose_address(99)
    assert wizard.state.selected_address_id == 1


def test_incomplete_contact_blocks_review():
    wizard = at_contact(new_wizard())
    with pytest.raises(IncompleteShippingInfo):
        wizard.submit_contact(fields=ContactFields(name="Only Name"))
    assert wizard.step == WizardStep.ENTER_CONTACT


def test_address_list_change_reruns_selection():
    state = at_contact(new_wizard(addresses=[make_address(1)])).state
    assert state.selected_address_id == 1

    wizard = SubmissionWizard(state, REQUEST_FLOW, addresses=[make_address(3, is_primary=True), make_address(1)])
    assert wizard.state.selected_address_id == 3


def test_submit_failure_returns_to_review_with_fields():
    wizard = at_contact(new_wizard(addresses=[make_address(1)]))
    wizard.submit_contact()

    def failing(submission):
        raise BackendError("Failed to submit request.")

    with pytest.raises(BackendError):
        wizard.submit(failing)

    assert wizard.step == WizardStep.REVIEW
    assert wizard.state.details.name == "Notebook"
    assert wizard.state.category == ItemCategory.BOOK


def test_submit_success_resets_fields():
    addresses = [make_address(1), make_address(2, is_primary=True)]
    wizard = at_contact(new_wizard(addresses=addresses))
    wizard.submit_contact(address_id=1)
    stored = []

    result = wizard.submit(lambda submission: stored.append(submission) or "row")

    assert result == "row"
    assert wizard.step == WizardStep.SUCCESS
    assert wizard.state.category is None
    assert wizard.state.details.name == ""
    # re-primed from the primary address
    assert wizard.state.selected_address_id == 2

    submission = stored[0]
    assert submission.kind == FlowKind.REQUEST
    assert submission.details.quantity == 2
    assert submission.shipping.name == "Receiver 1"


def test_submit_revalidates_stale_contact():
    profile = asha_profile()
    wizard = at_contact(new_wizard(addresses=[make_address(1)], profile=profile))
    wizard.submit_contact()

    # the only saved address was deleted elsewhere before submitting
    wizard = SubmissionWizard(wizard.state, REQUEST_FLOW, addresses=[], profile=profile,
                              email="asha@example.com")
    with pytest.raises(IncompleteShippingInfo):
        wizard.submit(lambda submission: None)

    assert wizard.step == WizardStep.ENTER_CONTACT
    assert wizard.use_new_address_form
    contact = wizard.state.contact
    assert contact.name == "Asha"
    assert contact.address == "12 Lake Rd"
    assert contact.city == "Colombo"
    assert contact.phone == "0770000000"


def test_reviewed_address_survives_new_address():
    addresses = [make_address(1, is_primary=True), make_address(2)]
    wizard = at_contact(new_wizard(addresses=addresses))
    wizard.submit_contact(address_id="2")

    # another address was added from the profile page
    addresses = [make_address(3, is_primary=True)] + addresses
    wizard = SubmissionWizard(wizard.state, REQUEST_FLOW, addresses=addresses)
    assert wizard.state.selected_address_id == 2
    stored = []
    wizard.submit(stored.append)

    assert stored[0].shipping.name == "Receiver 2"


def test_deleted_reviewed_address_needs_new_choice():
    addresses = [make_address(1, is_primary=True), make_address(2)]
    wizard = at_contact(new_wizard(addresses=addresses))
    wizard.submit_contact(address_id="2")

    wizard = SubmissionWizard(wizard.state, REQUEST_FLOW, addresses=[make_address(1, is_primary=True)])
    stored = []
    with pytest.raises(MissingAddressSelection):
        wizard.submit(stored.append)

    assert stored == []
    assert wizard.step == WizardStep.ENTER_CONTACT
    assert wizard.state.selected_address_id == 1

    wizard.submit_contact()
    wizard.submit(stored.append)
    assert stored[0].shipping.name == "Receiver 1"


def test_reviewed_form_address_is_kept_when_addresses_appear():
    wizard = at_contact(new_wizard(profile=asha_profile()))
    wizard.submit_contact(fields=wizard.state.contact)

    wizard = SubmissionWizard(wizard.state, REQUEST_FLOW, addresses=[make_address(1)])
    stored = []
    wizard.submit(stored.append)

    assert stored[0].shipping.address == "12 Lake Rd"


def test_start_over_after_success():
    wizard = at_contact(new_wizard(addresses=[make_address(1)]))
    wizard.submit_contact()
    wizard.submit(lambda submission: None)

    wizard.start_over()
    assert wizard.step == WizardStep.SELECT_CATEGORY


def test_end_to_end_request_without_saved_addresses():
    wizard = new_wizard(profile=asha_profile())
    wizard.start(category="book", item_name="Math Textbook")
    wizard.submit_details(name="Math Textbook", description="For grade 6 maths", quantity=None)

    assert wizard.use_new_address_form
    wizard.submit_contact(fields=wizard.state.contact)
    assert wizard.step == WizardStep.REVIEW
    assert wizard.summary()["headline"] == "Math Textbook ×1"

    stored = []
    wizard.submit(stored.append)

    assert wizard.step == WizardStep.SUCCESS
    assert wizard.state.category is None
    assert stored[0].shipping.phone == "0770000000"
    assert stored[0].shipping.country == "Sri Lanka"


def test_item_flow_locks_name_and_defaults_description():
    wizard = new_wizard(flow=ITEM_FLOW)
    assert wizard.step == WizardStep.ENTER_DETAILS

    wizard.submit_details(name="Something Else", description="", quantity="4")

    assert wizard.state.details.name == "Math Textbook"
    assert wizard.state.details.description == "Requesting Math Textbook"
    assert wizard.state.details.quantity == 4


def test_item_flow_caps_quantity_at_stock():
    wizard = new_wizard(flow=replace(ITEM_FLOW, max_quantity=2))

    with pytest.raises(FormValidationError) as excinfo:
        wizard.submit_details(name="Math Textbook", description="", quantity="500")
    assert excinfo.value.messages == ["Requested quantity exceeds available quantity (2)."]
    assert wizard.step == WizardStep.ENTER_DETAILS

    wizard.submit_details(name="Math Textbook", description="", quantity="2")
    assert wizard.step == WizardStep.ENTER_CONTACT


def test_item_flow_allows_only_its_category():
    wizard = new_wizard(flow=ITEM_FLOW)
    wizard.back()
    with pytest.raises(FormValidationError):
        wizard.select_category("pencil")


def test_donation_fields():
    wizard = new_wizard(flow=DONATION_FLOW)
    wizard.select_category("school_supplies")
    with pytest.raises(FormValidationError):
        wizard.submit_details(name="Backpack", description="Blue", image_url="ftp://example.com/a.png")

    wizard.submit_details(name="Backpack", description="Blue", condition="Excellent",
                          image_url="https://example.com/a.png")
    summary = wizard.summary()
    assert summary["condition"] == "Good"
    assert summary["image_url"] == "https://example.com/a.png"
    assert summary["category_label"] == "School Supplies"


def test_request_flow_ignores_donation_fields():
    wizard = at_contact(new_wizard())
    assert wizard.summary()["condition"] is None


def test_state_survives_serialization():
    wizard = at_contact(new_wizard(addresses=[make_address(5)]))
    restored = WizardState.model_validate(wizard.state.model_dump(mode="json"))

    assert restored == wizard.state
    assert restored.step == WizardStep.ENTER_CONTACT


def test_profile_without_contact_fields():
    profile = UserProfile(id=1, email="a@example.com", name="Bare")
    wizard = at_contact(new_wizard(profile=profile))
    assert wizard.state.contact.name == "Bare"
    assert wizard.state.contact.phone == ""
