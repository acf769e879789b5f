"""
Customer data access
"""
from typing import Optional

from origination.database.models import Customer
from origination.database.models.enums import Stage
from origination.repositories.base_repository import BaseRepository


class CustomerRepository(BaseRepository[Customer]):
    model = Customer

    def get_by_phone(self, phone: str) -> Optional[Customer]:
        return self.find_one_by(phone=phone)

    def find_by_tax_id(self, tax_id: str) -> Optional[Customer]:
        return self.find_one_by(tax_id=tax_id)

    def upsert_by_phone(self, phone: str, name: Optional[str] = None) -> Customer:
        """
        Fetch the customer for a phone number, creating it at stage NEW.
        A display name from the transport fills the name only when none is stored.
        """
        customer = self.get_by_phone(phone)
        if customer is None:
            return self.create(phone=phone, name=name, stage=Stage.NEW.value)
        if name and not customer.name:
            customer.name = name
            self.db.flush()
        return customer
