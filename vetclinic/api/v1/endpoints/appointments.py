"""Appointment endpoints."""

from datetime import date, datetime
from uuid import UUID

from fastapi import APIRouter, Query, status

from vetclinic.dependencies import AnyStaff, Appointments, CurrentUser, Veterinarian
from vetclinic.schemas.appointments import (
    AppointmentCancel,
    AppointmentCreate,
    AppointmentFilters,
    AppointmentListResponse,
    AppointmentReschedule,
    AppointmentResponse,
    AppointmentStatus,
    AvailabilityResponse,
    DailySlotsResponse,
)

router = APIRouter()


@router.post(
    "/",
    response_model=AppointmentResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["Appointments"],
    summary="Schedule appointment",
)
async def schedule_appointment(
    data: AppointmentCreate,
    current_user: CurrentUser,
    service: Appointments,
) -> AppointmentResponse:
    """
    Schedule a new appointment.

    Clients may only book for their own pets.

    Args:
        data: Appointment creation data
        current_user: Authenticated user
        service: Appointment service

    Returns:
        Created appointment
    """
    return await service.schedule(data, actor=current_user)


@router.get(
    "/",
    response_model=AppointmentListResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="List appointments",
)
async def list_appointments(
    current_user: AnyStaff,
    service: Appointments,
    status_filter: AppointmentStatus | None = Query(None, alias="status"),
    veterinarian_id: UUID | None = Query(None),
    patient_id: UUID | None = Query(None),
    from_date: datetime | None = Query(None),
    to_date: datetime | None = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
) -> AppointmentListResponse:
    """
    List appointments with filtering (clinic staff only).

    Args:
        current_user: Authenticated veterinarian or secretary
        service: Appointment service
        status_filter: Filter by status
        veterinarian_id: Filter by veterinarian ID
        patient_id: Filter by patient ID
        from_date: Filter by start date
        to_date: Filter by end date
        page: Page number
        page_size: Items per page

    Returns:
        Paginated list of appointments
    """
    filters = AppointmentFilters(
        status=status_filter,
        veterinarian_id=veterinarian_id,
        patient_id=patient_id,
        from_date=from_date,
        to_date=to_date,
        page=page,
        page_size=page_size,
    )
    return await service.list_appointments(filters)


@router.get(
    "/availability",
    response_model=AvailabilityResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Check veterinarian availability",
)
async def check_availability(
    current_user: CurrentUser,
    service: Appointments,
    veterinarian_id: UUID = Query(...),
    at: datetime = Query(..., description="Requested appointment time"),
) -> AvailabilityResponse:
    """Whether the veterinarian can take an appointment at the given time."""
    return await service.check_availability(veterinarian_id, at)


@router.get(
    "/slots",
    response_model=DailySlotsResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Daily slots of a veterinarian",
)
async def daily_slots(
    current_user: CurrentUser,
    service: Appointments,
    veterinarian_id: UUID = Query(...),
    day: date = Query(..., alias="date"),
) -> DailySlotsResponse:
    """List the bookable slots of a veterinarian on one day with their occupancy."""
    return await service.daily_slots(veterinarian_id, day)


@router.get(
    "/patient/{patient_id}",
    response_model=AppointmentListResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Appointments of a patient",
)
async def list_patient_appointments(
    patient_id: UUID,
    current_user: CurrentUser,
    service: Appointments,
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
) -> AppointmentListResponse:
    """List a patient's appointments; clients only see their own pets."""
    return await service.list_for_patient(
        patient_id, actor=current_user, page=page, page_size=page_size
    )


@router.get(
    "/veterinarian/{veterinarian_id}",
    response_model=AppointmentListResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Appointments of a veterinarian",
)
async def list_veterinarian_appointments(
    veterinarian_id: UUID,
    current_user: AnyStaff,
    service: Appointments,
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
) -> AppointmentListResponse:
    """List a veterinarian's appointments (clinic staff only)."""
    return await service.list_for_veterinarian(veterinarian_id, page=page, page_size=page_size)


@router.get(
    "/{appointment_id}",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Get appointment by ID",
)
async def get_appointment(
    appointment_id: UUID,
    current_user: CurrentUser,
    service: Appointments,
) -> AppointmentResponse:
    """
    Get a specific appointment by ID.

    Args:
        appointment_id: Appointment ID
        current_user: Authenticated user
        service: Appointment service

    Returns:
        Appointment details
    """
    return await service.get(appointment_id, actor=current_user)


@router.put(
    "/{appointment_id}/reschedule",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Reschedule appointment",
)
async def reschedule_appointment(
    appointment_id: UUID,
    data: AppointmentReschedule,
    current_user: CurrentUser,
    service: Appointments,
) -> AppointmentResponse:
    """
    Move a scheduled appointment to a new time.

    Args:
        appointment_id: Appointment ID
        data: New appointment time
        current_user: Authenticated user
        service: Appointment service

    Returns:
        Rescheduled appointment
    """
    return await service.reschedule(appointment_id, data.scheduled_at, actor=current_user)


@router.put(
    "/{appointment_id}/cancel",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Cancel appointment",
)
async def cancel_appointment(
    appointment_id: UUID,
    data: AppointmentCancel,
    current_user: CurrentUser,
    service: Appointments,
) -> AppointmentResponse:
    """
    Cancel an appointment with a reason.

    Args:
        appointment_id: Appointment ID
        data: Cancellation reason
        current_user: Authenticated user
        service: Appointment service

    Returns:
        Cancelled appointment
    """
    return await service.cancel(appointment_id, data.reason, actor=current_user)


@router.put(
    "/{appointment_id}/complete",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Complete appointment",
)
async def complete_appointment(
    appointment_id: UUID,
    current_user: Veterinarian,
    service: Appointments,
) -> AppointmentResponse:
    """Mark a scheduled appointment as completed (veterinarians only)."""
    return await service.complete(appointment_id, actor=current_user)
