"""Catalog service - a barber's bookable services"""

import logging

from ...errors import NotFound
from ...schemas import ServiceRecord
from ...storage.base import StorageBackend
from .schemas import ServiceCreate, ServiceUpdate

logger = logging.getLogger(__name__)


class CatalogService:
    def __init__(self, storage: StorageBackend):
        self.storage = storage

    def _owned(self, barber_id: str, service_id: str) -> ServiceRecord:
        service = self.storage.get_service(service_id)
        # Another barber's service is reported as missing
        if not service or service.barber_id != barber_id:
            raise NotFound("Servicio no encontrado")
        return service

    def list_public(self, barber_id: str) -> list[ServiceRecord]:
        if not self.storage.get_account(barber_id):
            raise NotFound("Barbero no encontrado")
        return self.storage.list_services(barber_id, active_only=True)

    def list_all(self, barber_id: str) -> list[ServiceRecord]:
        return self.storage.list_services(barber_id)

    def create(self, barber_id: str, body: ServiceCreate) -> ServiceRecord:
        order = body.order
        if order is None:
            existing = self.storage.list_services(barber_id)
            order = max((s.order for s in existing), default=0) + 1
        service = self.storage.create_service(
            ServiceRecord(
                barber_id=barber_id,
                name=body.name,
                price=body.price,
                duration=body.duration,
                description=body.description,
                order=order,
            )
        )
        logger.info(f"🆕 Service {service.id} ({service.name}) created for {barber_id}")
        return service

    def update(self, barber_id: str, service_id: str, body: ServiceUpdate) -> ServiceRecord:
        self._owned(barber_id, service_id)
        fields = body.model_dump(exclude_unset=True, exclude_none=True)
        if not fields:
            return self.storage.get_service(service_id)
        return self.storage.update_service(service_id, **fields)

    def remove(self, barber_id: str, service_id: str, hard: bool = False) -> None:
        """Services are soft-deactivated unless a hard delete is requested"""
        self._owned(barber_id, service_id)
        if hard:
            self.storage.delete_service(service_id)
            logger.info(f"🗑️ Service {service_id} deleted for {barber_id}")
        else:
            self.storage.update_service(service_id, is_active=False)
            logger.info(f"Service {service_id} deactivated for {barber_id}")
