"""Exception handling for courierlink."""

from litestar import Request, Response
from litestar.exceptions import ValidationException


class CourierLinkError(Exception):
    """Base class for every error raised by courierlink."""


class ConfigurationError(CourierLinkError):
    """A required component is not configured."""

    def __init__(self, message: str) -> None:
        super().__init__(message)


class UnsupportedCarrierError(CourierLinkError):
    """No adapter implementation exists for the carrier code."""

    def __init__(self, code: str | None) -> None:
        self.code = code
        super().__init__(f"Unsupported carrier: {code!r}")


class CarrierNotConfiguredError(CourierLinkError):
    """The carrier is known but has no active configuration."""

    def __init__(self, code: str) -> None:
        self.code = code
        super().__init__(f"Carrier {code!r} is not configured or not active")


class CommunicationError(CourierLinkError):
    """A carrier API could not be reached or answered with an error."""


class CarrierRejectedError(CourierLinkError):
    """The carrier refused an operation. The message is its reason."""

    def __init__(self, carrier_code: str, reason: str) -> None:
        self.carrier_code = carrier_code
        self.reason = reason
        super().__init__(reason)


class BookingFailedError(CarrierRejectedError):
    """The carrier rejected a booking, or the parcel is outside its limits."""


class FulfillmentUnitNotFoundError(CourierLinkError):
    def __init__(self, fulfillment_unit_id: str) -> None:
        self.fulfillment_unit_id = fulfillment_unit_id
        super().__init__(
            f"Fulfillment unit {fulfillment_unit_id!r} not found"
        )


class InvalidWebhookError(CourierLinkError):
    """A webhook payload could not be understood."""


class InvalidSignatureError(CourierLinkError):
    """A webhook signature did not verify."""

    def __init__(self, code: str) -> None:
        self.code = code
        super().__init__("Invalid signature")


class InvalidTransitionError(CourierLinkError):
    """A status change is not allowed by the shipment state machine."""

    def __init__(self, current: str, target: str) -> None:
        self.current = current
        self.target = target
        super().__init__(
            f"Cannot change shipment status from {current!r} to {target!r}"
        )


class ShipmentNotFoundError(CourierLinkError):
    """Shipment with given ID was not found."""

    def __init__(self, shipment_id: str) -> None:
        self.shipment_id = shipment_id
        super().__init__(f"Shipment {shipment_id!r} not found")


class CarrierConfigNotFoundError(CourierLinkError):
    """Carrier configuration with given code was not found."""

    def __init__(self, code: str) -> None:
        self.code = code
        super().__init__(f"Carrier configuration {code!r} not found")


class CarrierConfigExistsError(CourierLinkError):
    """A carrier configuration with this code already exists."""

    def __init__(self, code: str) -> None:
        self.code = code
        super().__init__(f"Carrier configuration {code!r} already exists")


class DuplicateShipmentError(CourierLinkError):
    """The fulfillment unit already has a live shipment."""

    def __init__(self, fulfillment_unit_id: str, shipment_id: str) -> None:
        self.fulfillment_unit_id = fulfillment_unit_id
        self.shipment_id = shipment_id
        super().__init__(
            f"Shipment already exists for fulfillment unit "
            f"{fulfillment_unit_id!r}"
        )


class WebhookDeferredError(CourierLinkError):
    """A verified webhook failed to apply and was queued for retry."""


def _error_response(
    request: Request, detail: str, code: str, status_code: int
) -> Response:
    return Response(
        content={"detail": detail, "code": code},
        status_code=status_code,
    )


def handle_configuration_error(
    request: Request, exc: ConfigurationError
) -> Response:
    """Map ConfigurationError to 500."""
    return _error_response(request, str(exc), "configuration_error", 500)


def handle_unsupported_carrier(
    request: Request, exc: UnsupportedCarrierError
) -> Response:
    """Map UnsupportedCarrierError to 400."""
    return _error_response(request, str(exc), "unsupported_carrier", 400)


def handle_carrier_not_configured(
    request: Request, exc: CarrierNotConfiguredError
) -> Response:
    """Map CarrierNotConfiguredError to 400."""
    return _error_response(request, str(exc), "carrier_not_configured", 400)


def handle_communication_error(
    request: Request, exc: CommunicationError
) -> Response:
    """Map CommunicationError to 502."""
    return _error_response(request, str(exc), "communication_error", 502)


def handle_booking_failed(
    request: Request, exc: BookingFailedError
) -> Response:
    """Map BookingFailedError to 400."""
    return _error_response(request, str(exc), "booking_failed", 400)


def handle_carrier_rejected(
    request: Request, exc: CarrierRejectedError
) -> Response:
    """Map CarrierRejectedError to 400."""
    return _error_response(request, str(exc), "carrier_rejected", 400)


def handle_fulfillment_unit_not_found(
    request: Request, exc: FulfillmentUnitNotFoundError
) -> Response:
    """Map FulfillmentUnitNotFoundError to 404."""
    return _error_response(request, str(exc), "not_found", 404)


def handle_invalid_webhook(
    request: Request, exc: InvalidWebhookError
) -> Response:
    """Map InvalidWebhookError to 400."""
    return _error_response(request, str(exc), "invalid_webhook", 400)


def handle_invalid_signature(
    request: Request, exc: InvalidSignatureError
) -> Response:
    """Map InvalidSignatureError to 401."""
    return _error_response(request, str(exc), "invalid_signature", 401)


def handle_invalid_transition(
    request: Request, exc: InvalidTransitionError
) -> Response:
    """Map InvalidTransitionError to 409."""
    return _error_response(request, str(exc), "invalid_transition", 409)


def handle_shipment_not_found(
    request: Request, exc: ShipmentNotFoundError
) -> Response:
    """Map ShipmentNotFoundError to 404."""
    return _error_response(request, str(exc), "not_found", 404)


def handle_carrier_config_not_found(
    request: Request, exc: CarrierConfigNotFoundError
) -> Response:
    """Map CarrierConfigNotFoundError to 404."""
    return _error_response(request, str(exc), "not_found", 404)


def handle_carrier_config_exists(
    request: Request, exc: CarrierConfigExistsError
) -> Response:
    """Map CarrierConfigExistsError to 409."""
    return _error_response(request, str(exc), "carrier_config_exists", 409)


def handle_duplicate_shipment(
    request: Request, exc: DuplicateShipmentError
) -> Response:
    """Map DuplicateShipmentError to 409."""
    return _error_response(request, str(exc), "duplicate_shipment", 409)


def handle_webhook_deferred(
    request: Request, exc: WebhookDeferredError
) -> Response:
    """Map WebhookDeferredError to 503."""
    return _error_response(request, str(exc), "webhook_deferred", 503)


def handle_validation_error(
    request: Request, exc: ValidationException
) -> Response:
    """Map request validation failures to 400, keeping the field errors."""
    return Response(
        content={
            "detail": exc.detail,
            "code": "validation_error",
            "errors": exc.extra or [],
        },
        status_code=400,
    )


def handle_courierlink_error(
    request: Request, exc: CourierLinkError
) -> Response:
    """Map generic CourierLinkError to 400."""
    return _error_response(request, str(exc), "courierlink_error", 400)


EXCEPTION_HANDLERS = {
    ConfigurationError: handle_configuration_error,
    UnsupportedCarrierError: handle_unsupported_carrier,
    CarrierNotConfiguredError: handle_carrier_not_configured,
    CommunicationError: handle_communication_error,
    BookingFailedError: handle_booking_failed,
    CarrierRejectedError: handle_carrier_rejected,
    FulfillmentUnitNotFoundError: handle_fulfillment_unit_not_found,
    InvalidWebhookError: handle_invalid_webhook,
    InvalidSignatureError: handle_invalid_signature,
    InvalidTransitionError: handle_invalid_transition,
    ShipmentNotFoundError: handle_shipment_not_found,
    CarrierConfigNotFoundError: handle_carrier_config_not_found,
    CarrierConfigExistsError: handle_carrier_config_exists,
    DuplicateShipmentError: handle_duplicate_shipment,
    WebhookDeferredError: handle_webhook_deferred,
    CourierLinkError: handle_courierlink_error,
    ValidationException: handle_validation_error,
}
