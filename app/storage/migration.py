"""
Copy every barber, appointment and service from one storage backend to another
Usage: python -m app.storage.migration <source_backend> <target_backend>
       e.g. python -m app.storage.migration sql firestore
"""

import logging
import sys
from dataclasses import dataclass, field

from .base import StorageBackend

logger = logging.getLogger(__name__)


@dataclass
class MigrationReport:
    barbers: int = 0
    appointments: int = 0
    services: int = 0
    # (barber_id, "appointments" | "services", error message)
    failures: list[tuple[str, str, str]] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures


def migrate(source: StorageBackend, target: StorageBackend) -> MigrationReport:
    """
    Copy all barbers in one batch, then each barber's appointments and services in their own batches.

    Identifiers and timestamps are preserved. A failed batch is recorded in the report and the
    migration moves on; batches already committed for other barbers stay in place. Failing to
    copy the barbers themselves aborts the run since nothing else can reference them.
    """
    report = MigrationReport()

    accounts = source.list_accounts()
    logger.info(f"🔄 Migrating {len(accounts)} barbers from {source.name} to {target.name}")
    report.barbers = target.import_accounts(accounts)
    logger.info(f"✅ {report.barbers} barbers migrated")

    for account in accounts:
        barber_id = account.barber_id

        try:
            appointments = source.list_appointments(barber_id)
            if appointments:
                report.appointments += target.import_appointments(appointments)
        except Exception as e:
            logger.error(f"❌ Appointments batch failed for barber {barber_id}: {e}")
            report.failures.append((barber_id, "appointments", str(e)))

        try:
            services = source.list_services(barber_id)
            if services:
                report.services += target.import_services(services)
        except Exception as e:
            logger.error(f"❌ Services batch failed for barber {barber_id}: {e}")
            report.failures.append((barber_id, "services", str(e)))

    if report.ok:
        logger.info(
            f"✅ Migration completed: {report.barbers} barbers, "
            f"{report.appointments} appointments, {report.services} services"
        )
    else:
        logger.warning(
            f"⚠️ Migration finished with {len(report.failures)} failed batches: "
            f"{report.appointments} appointments, {report.services} services copied"
        )
    return report


def main(argv: list[str]) -> int:
    from ..config import FIREBASE_CREDENTIALS_PATH, FIREBASE_PROJECT_ID
    from ..firebase_clients import FirebaseClients
    from . import build_storage

    if len(argv) != 2 or set(argv) - {"sql", "firestore"}:
        logger.error("Usage: python -m app.storage.migration <sql|firestore> <sql|firestore>")
        return 1

    firebase = None
    if "firestore" in argv:
        firebase = FirebaseClients(FIREBASE_PROJECT_ID, FIREBASE_CREDENTIALS_PATH)

    source = build_storage(argv[0], firebase=firebase)
    target = build_storage(argv[1], firebase=firebase)
    try:
        report = migrate(source, target)
    except Exception as e:
        logger.error(f"❌ Migration failed: {e}")
        return 1
    finally:
        source.close()
        target.close()
        if firebase:
            firebase.close()
    return 0 if report.ok else 2


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(message)s")
    sys.exit(main(sys.argv[1:]))
