"""Service catalog and availability routes."""

import logging
from datetime import date

from fastapi import APIRouter, HTTPException, Query

from api.models.booking_schemas import AvailabilityResponse, ServiceResponse, SlotResponse
from booking.services.availability_service import get_available_slots
from booking.services.booking_query_service import get_service, list_services

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/services", tags=["services"])


@router.get("", response_model=list[ServiceResponse])
async def list_services_endpoint(include_inactive: bool = False) -> list[ServiceResponse]:
    services = await list_services(include_inactive=include_inactive)
    return [ServiceResponse.from_service(s) for s in services]


@router.get("/{service_id}/availability", response_model=AvailabilityResponse)
async def get_availability(
    service_id: str,
    date_str: str = Query(..., alias="date", description="Date as YYYY-MM-DD"),
) -> AvailabilityResponse:
    """
    Free slots of a service on a date in the business timezone.

    Returns an empty list for weekends and inactive services.
    """
    try:
        target_date = date.fromisoformat(date_str)
    except ValueError:
        raise HTTPException(
            status_code=400,
            detail={"error_code": "INVALID_DATE", "error_message": f"Invalid date: {date_str}"},
        )

    service = await get_service(service_id)
    if service is None:
        raise HTTPException(
            status_code=404,
            detail={"error_code": "SERVICE_NOT_FOUND", "error_message": f"Service {service_id} not found"},
        )

    slots = await get_available_slots(service_id, target_date)
    return AvailabilityResponse(
        service_id=service_id,
        date=target_date,
        slots=[SlotResponse.from_slot(slot) for slot in slots],
    )
