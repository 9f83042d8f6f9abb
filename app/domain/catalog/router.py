"""Catalog router - service CRUD for barbers and the public service list"""

from fastapi import APIRouter, Depends

from ...auth import get_current_barber_with_subscription
from ...dependencies import get_storage
from ...schemas import BarberAccount, MessageResponse, ServiceRecord
from ...storage.base import StorageBackend
from .schemas import ServiceCreate, ServiceUpdate
from .service import CatalogService

router = APIRouter(prefix="/services", tags=["Services"])


def get_catalog_service(storage: StorageBackend = Depends(get_storage)) -> CatalogService:
    """Dependency injection for CatalogService"""
    return CatalogService(storage)


@router.get("/me/all", response_model=list[ServiceRecord])
async def list_my_services(
    barber: BarberAccount = Depends(get_current_barber_with_subscription),
    service: CatalogService = Depends(get_catalog_service),
):
    """All services of the signed-in barber, including deactivated ones"""
    return service.list_all(barber.barber_id)


@router.get("/{barber_id}", response_model=list[ServiceRecord])
async def list_public_services(
    barber_id: str,
    service: CatalogService = Depends(get_catalog_service),
):
    """Active services of a barber in display order"""
    return service.list_public(barber_id)


@router.post("", response_model=ServiceRecord, status_code=201)
async def create_service(
    body: ServiceCreate,
    barber: BarberAccount = Depends(get_current_barber_with_subscription),
    service: CatalogService = Depends(get_catalog_service),
):
    return service.create(barber.barber_id, body)


@router.put("/{service_id}", response_model=ServiceRecord)
async def update_service(
    service_id: str,
    body: ServiceUpdate,
    barber: BarberAccount = Depends(get_current_barber_with_subscription),
    service: CatalogService = Depends(get_catalog_service),
):
    return service.update(barber.barber_id, service_id, body)


@router.delete("/{service_id}", response_model=MessageResponse)
async def delete_service(
    service_id: str,
    hard: bool = False,
    barber: BarberAccount = Depends(get_current_barber_with_subscription),
    service: CatalogService = Depends(get_catalog_service),
):
    """Deactivate a service, or remove it for good with ?hard=true"""
    service.remove(barber.barber_id, service_id, hard=hard)
    return MessageResponse(message="Servicio eliminado" if hard else "Servicio desactivado")
