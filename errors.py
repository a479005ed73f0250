from typing import Iterable, List, Optional, Union


class DonateHubError(Exception):
    """Base class for every error raised by the application."""


class FormValidationError(DonateHubError):
    """
    Local, synchronous validation failure.
    Blocks a wizard transition and never reaches the store.
    """

    def __init__(self, messages: Union[Iterable[str], str]):
        if isinstance(messages, str):
            messages = [messages]
        self.messages: List[str] = list(messages)
        super().__init__("; ".join(self.messages))


class IncompleteShippingInfo(FormValidationError):
    def __init__(self, missing: Iterable[str]):
        self.missing = list(missing)
        labels = ", ".join(self.missing)
        super().__init__(f"Please fill in all required shipping fields ({labels}).")


class MissingAddressSelection(FormValidationError):
    def __init__(self, address_id: Optional[int] = None):
        self.address_id = address_id
        if address_id is None:
            message = "Please choose a saved address or enter a new one."
        else:
            message = "The selected address is no longer available. Please choose again."
        super().__init__(message)


class InvalidStatusTransition(FormValidationError):
    def __init__(self, current: str, requested: str):
        self.current = current
        self.requested = requested
        super().__init__(f"A {current} request cannot be marked {requested}.")


class BackendError(DonateHubError):
    """Any failure of the data store. Callers show one generic message."""


class AuthError(DonateHubError):
    pass


class NotFoundError(DonateHubError):
    pass
