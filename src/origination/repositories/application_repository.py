"""
Application data access
"""
from typing import Optional

from origination.database.models import Application
from origination.database.models.enums import INACTIVE_APPLICATION_STATUSES
from origination.repositories.base_repository import BaseRepository


class ApplicationRepository(BaseRepository[Application]):
    model = Application

    def active_for_customer(self, customer_id: int) -> Optional[Application]:
        """The customer's active application: any status other than denied, disbursed or cancelled"""
        return (
            self.db.query(Application)
            .filter(
                Application.customer_id == customer_id,
                Application.status.notin_([s.value for s in INACTIVE_APPLICATION_STATUSES]),
            )
            .order_by(Application.id.desc())
            .first()
        )

    def latest_for_customer(self, customer_id: int) -> Optional[Application]:
        return (
            self.db.query(Application)
            .filter(Application.customer_id == customer_id)
            .order_by(Application.id.desc())
            .first()
        )
