from fastapi import APIRouter

from wizard import FlowKind, WizardFlow
from .wizards import WizardBinding, register_wizard_routes

router = APIRouter(tags=["requests"])

REQUEST_FLOW = WizardFlow(kind=FlowKind.REQUEST, title="Request School Supplies")


def get_request_binding() -> WizardBinding:
    return WizardBinding(
        flow=REQUEST_FLOW,
        base_path="/request",
        cookie_name="wizard_request",
    )


# /request?item=<name>&category=<category> skips the category step
register_wizard_routes(router, "/request", get_request_binding)
