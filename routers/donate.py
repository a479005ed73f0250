from fastapi import APIRouter

from wizard import FlowKind, WizardFlow
from .wizards import WizardBinding, register_wizard_routes

router = APIRouter(tags=["donate"])

DONATION_FLOW = WizardFlow(kind=FlowKind.DONATION, title="Donate School Supplies")


def get_donation_binding() -> WizardBinding:
    return WizardBinding(
        flow=DONATION_FLOW,
        base_path="/donate",
        cookie_name="wizard_donation",
    )


register_wizard_routes(router, "/donate", get_donation_binding)
