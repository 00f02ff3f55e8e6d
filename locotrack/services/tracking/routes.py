# locotrack/services/tracking/routes.py
"""
HTTP эндпоинты сервиса трекинга.

- POST /api/update-location — координаты от водителя
- GET /api/bus-location/{identifier} — текущая позиция
- GET /api/route-details/{identifier} — данные маршрута
- GET /api/all-buses — весь транспорт в сети
- /api/admin/* — регистрация и удаление транспорта слоем администрирования
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, status

from locotrack.common.constants import RejectReason
from locotrack.common.exceptions import (
    InternalError,
    InvalidInputError,
    StoreUnavailableError,
    TrackingError,
    VehicleNotFoundError,
)
from locotrack.core.tracking.dispatcher import SubmitResult, UpdateDispatcher
from locotrack.services.tracking.dependencies import get_dispatcher, verify_admin_token
from locotrack.shared.models.common import ErrorResponse
from locotrack.shared.models.location import (
    LocationSnapshot,
    LocationUpdateRequest,
    RouteDetails,
    SubmitResponse,
    VehicleRegistration,
)

router = APIRouter(prefix="/api", tags=["Location"])
admin_router = APIRouter(
    prefix="/api/admin",
    tags=["Admin"],
    dependencies=[Depends(verify_admin_token)],
)

_REJECT_ERRORS: dict[RejectReason, type[TrackingError]] = {
    RejectReason.INVALID_INPUT: InvalidInputError,
    RejectReason.NOT_FOUND: VehicleNotFoundError,
    RejectReason.STORE_UNAVAILABLE: StoreUnavailableError,
    RejectReason.INTERNAL_ERROR: InternalError,
}


def _raise_rejection(result: SubmitResult) -> None:
    error_cls = _REJECT_ERRORS.get(result.reason, InternalError)
    raise error_cls(result.message or "Локация отклонена")


# === LOCATION ENDPOINTS ===

@router.post(
    "/update-location",
    response_model=SubmitResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Некорректные данные"},
        404: {"model": ErrorResponse, "description": "Транспорт не зарегистрирован"},
        503: {"model": ErrorResponse, "description": "Хранилище недоступно"},
    },
    summary="Обновить локацию транспорта",
)
async def update_location(
    payload: LocationUpdateRequest,
    dispatcher: UpdateDispatcher = Depends(get_dispatcher),
) -> SubmitResponse:
    """
    Принять координаты от водителя.

    Сохраняет позицию и рассылает location-update подписчикам транспорта.
    """
    result = await dispatcher.submit_location(
        vehicle_id=payload.vehicle_id,
        latitude=payload.latitude,
        longitude=payload.longitude,
        accuracy=payload.accuracy,
        captured_at=payload.captured_at,
    )
    if not result.accepted:
        _raise_rejection(result)

    return SubmitResponse(success=True, message="Location updated")


@router.get(
    "/bus-location/{identifier}",
    response_model=LocationSnapshot,
    response_model_by_alias=True,
    responses={404: {"model": ErrorResponse, "description": "Транспорт не найден или не в сети"}},
    summary="Текущая позиция транспорта",
)
async def get_bus_location(
    identifier: str,
    dispatcher: UpdateDispatcher = Depends(get_dispatcher),
) -> LocationSnapshot:
    """Поиск по vehicleId или номеру автобуса."""
    record = await dispatcher.get_location(identifier)
    return LocationSnapshot.from_record(record)


@router.get(
    "/route-details/{identifier}",
    response_model=RouteDetails,
    response_model_by_alias=True,
    responses={404: {"model": ErrorResponse, "description": "Транспорт не найден"}},
    summary="Данные маршрута",
)
async def get_route_details(
    identifier: str,
    dispatcher: UpdateDispatcher = Depends(get_dispatcher),
) -> RouteDetails:
    record = await dispatcher.get_route_details(identifier)
    return RouteDetails.from_record(record)


@router.get(
    "/all-buses",
    response_model=list[LocationSnapshot],
    response_model_by_alias=True,
    summary="Весь транспорт в сети",
)
async def get_all_buses(
    dispatcher: UpdateDispatcher = Depends(get_dispatcher),
) -> list[LocationSnapshot]:
    records = await dispatcher.list_online()
    return [LocationSnapshot.from_record(record) for record in records]


# === ADMIN ENDPOINTS ===

@admin_router.post(
    "/vehicles",
    response_model=RouteDetails,
    response_model_by_alias=True,
    status_code=status.HTTP_201_CREATED,
    responses={
        403: {"model": ErrorResponse},
        409: {"model": ErrorResponse, "description": "Транспорт уже зарегистрирован"},
    },
    summary="Зарегистрировать транспорт",
)
async def register_vehicle(
    registration: VehicleRegistration,
    dispatcher: UpdateDispatcher = Depends(get_dispatcher),
) -> RouteDetails:
    """Регистрирует транспорт в статусе offline и рассылает bus-added."""
    record = await dispatcher.register_vehicle(
        vehicle_id=registration.vehicle_id,
        organization_id=registration.organization_id,
        bus_number=registration.bus_number,
        route=registration.route,
        start=registration.start,
        destination=registration.destination,
        stops=registration.stops,
    )
    return RouteDetails.from_record(record)


@admin_router.delete(
    "/vehicles/{vehicle_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
    summary="Снять транспорт с учёта",
)
async def remove_vehicle(
    vehicle_id: str,
    dispatcher: UpdateDispatcher = Depends(get_dispatcher),
) -> None:
    await dispatcher.remove_vehicle(vehicle_id)


@admin_router.delete(
    "/organizations/{organization_id}",
    responses={403: {"model": ErrorResponse}},
    summary="Снять с учёта весь транспорт организации",
)
async def remove_organization(
    organization_id: str,
    dispatcher: UpdateDispatcher = Depends(get_dispatcher),
) -> dict[str, list[str]]:
    removed = await dispatcher.remove_organization(organization_id)
    return {"removedVehicleIds": removed}
