import pytest

from addresses import (
    ContactFields,
    fill_empty_fields,
    profile_contact,
    resolve_shipping_info,
    select_default_address,
    snapshot_from_address,
)
from errors import IncompleteShippingInfo, MissingAddressSelection
from tests.factories import asha_profile, make_address


def test_default_selection_prefers_primary():
    addresses = [make_address(1), make_address(2, is_primary=True), make_address(3)]
    assert select_default_address(addresses) == 2


def test_default_selection_takes_first_primary_match():
    addresses = [make_address(4, is_primary=True), make_address(5, is_primary=True)]
    assert select_default_address(addresses) == 4


def test_default_selection_without_primary_takes_first():
    assert select_default_address([make_address(7), make_address(8)]) == 7


def test_default_selection_of_empty_list():
    assert select_default_address([]) is None


def test_saved_address_maps_fields_and_session_email():
    address = make_address(3)
    snapshot = resolve_shipping_info([address], 3, False, ContactFields(), email="me@example.com")

    assert snapshot.name == "Receiver 3"
    assert snapshot.phone == "0771234567"
    assert snapshot.address == "3 Temple Rd"
    assert snapshot.city == "Kandy"
    assert snapshot.state == "Central"
    assert snapshot.zip_code == "20000"
    assert snapshot.country == "Sri Lanka"
    assert snapshot.email == "me@example.com"


def test_snapshot_does_not_follow_later_address_edits():
    address = make_address(1)
    snapshot = snapshot_from_address(address, "me@example.com")

    address.city = "Galle"
    address.address = "99 Fort St"

    assert snapshot.city == "Kandy"
    assert snapshot.address == "1 Temple Rd"


def test_stale_selection_is_an_error():
    addresses = [make_address(1), make_address(2)]
    with pytest.raises(MissingAddressSelection) as excinfo:
        resolve_shipping_info(addresses, 42, False, ContactFields(name="typed"))
    assert excinfo.value.address_id == 42


def test_missing_selection_is_an_error():
    with pytest.raises(MissingAddressSelection):
        resolve_shipping_info([make_address(1)], None, False, ContactFields())


def test_new_address_form_wins_over_saved_addresses():
    fields = ContactFields(name="Nimal", phone="0711111111", address="5 Hill St", city="Jaffna")
    snapshot = resolve_shipping_info([make_address(1, is_primary=True)], 1, True, fields)

    assert snapshot.name == "Nimal"
    assert snapshot.city == "Jaffna"


def test_form_is_used_when_there_are_no_addresses():
    fields = ContactFields(name="Nimal", phone="0711111111", address="5 Hill St", city="Jaffna")
    snapshot = resolve_shipping_info([], None, False, fields, default_country="Sri Lanka")

    assert snapshot.address == "5 Hill St"
    assert snapshot.country == "Sri Lanka"


def test_country_is_never_empty():
    fields = ContactFields(name="A", phone="1", address="2 Road", city="Matara", country="  ")
    snapshot = resolve_shipping_info([], None, True, fields, default_country="Sri Lanka")
    assert snapshot.country == "Sri Lanka"


def test_empty_name_falls_back_to_profile_name():
    fields = ContactFields(phone="0711111111", address="5 Hill St", city="Jaffna")
    fallback = profile_contact(asha_profile(), "asha@example.com")

    snapshot = resolve_shipping_info([], None, True, fields, profile_fallback=fallback)

    assert snapshot.name == "Asha"


def test_incomplete_shipping_lists_missing_fields():
    fields = ContactFields(name="Nimal", city="Jaffna")
    with pytest.raises(IncompleteShippingInfo) as excinfo:
        resolve_shipping_info([], None, True, fields)
    assert excinfo.value.missing == ["phone", "address"]


def test_fill_empty_fields_keeps_typed_values():
    typed = ContactFields(name="Typed Name", phone="")
    fallback = profile_contact(asha_profile(), "asha@example.com")

    merged = fill_empty_fields(typed, fallback)

    assert merged.name == "Typed Name"
    assert merged.phone == "0770000000"
    assert merged.address == "12 Lake Rd"
    assert merged.email == "asha@example.com"


def test_profile_contact_without_profile():
    fields = profile_contact(None, "x@example.com")
    assert fields.email == "x@example.com"
    assert fields.name == ""


def test_donor_note_layout():
    snapshot = snapshot_from_address(make_address(1), "donor@example.com")
    assert snapshot.donor_note() == (
        "Donor: Receiver 1\n"
        "Phone: 0771234567\n"
        "Email: donor@example.com\n"
        "Location: 1 Temple Rd, Kandy, Sri Lanka"
    )


def test_request_columns():
    columns = snapshot_from_address(make_address(2)).request_columns()
    assert columns["shipping_zip"] == "20000"
    assert columns["shipping_state"] == "Central"
    assert set(columns) == {
        "shipping_name",
        "shipping_phone",
        "shipping_address",
        "shipping_city",
        "shipping_state",
        "shipping_zip",
        "shipping_country",
    }
