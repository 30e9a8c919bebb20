"""Public tracking endpoint."""

from __future__ import annotations

from typing import Annotated, ClassVar

from litestar import Controller, Response, get
from litestar.params import Dependency
from litestar.status_codes import HTTP_200_OK, HTTP_404_NOT_FOUND

from courierlink.lookup import TrackingLookup
from courierlink.schemas import TrackingEventResponse, TrackingLookupResponse


class TrackingController(Controller):
    """Tracking lookup for customers, no authentication."""

    path = "/track"
    tags: ClassVar[list[str]] = ["tracking"]

    @get("/{tracking_number:str}")
    async def track_by_number(
        self,
        tracking_number: str,
        lookup: Annotated[TrackingLookup, Dependency(skip_validation=True)],
    ) -> Response[TrackingLookupResponse]:
        """Look up a parcel by tracking number.

        Unknown numbers answer 404 with ``found: false`` in the body.
        """
        result = await lookup.track(tracking_number)
        response = TrackingLookupResponse(
            found=result.found,
            tracking_number=result.tracking_number,
            carrier_code=result.carrier_code,
            carrier_name=result.carrier_name,
            status=result.status,
            origin=result.origin,
            destination=result.destination,
            estimated_delivery=result.estimated_delivery,
            actual_delivery=result.actual_delivery,
            tracking_url=result.tracking_url,
            events=[
                TrackingEventResponse.model_validate(e) for e in result.events
            ],
            message=None if result.found else "Tracking number not found",
        )
        return Response(
            content=response,
            status_code=HTTP_200_OK if result.found else HTTP_404_NOT_FOUND,
        )
