"""In-memory stores for tests and embedding."""

import copy
import threading
from typing import Iterable, Optional

from ..models.passport import (
    AuditEvent,
    ComplianceProfile,
    Product,
    ProductUpdate,
    VerificationStatus,
)
from .repository import AuditSink, ProductStore, ProfileStore


class InMemoryPassportStore(ProfileStore, ProductStore):
    """Profiles and products held in dictionaries."""

    def __init__(
        self,
        profiles: Iterable[ComplianceProfile] = (),
        products: Iterable[Product] = (),
    ):
        self._profiles = list(profiles)
        self._products = {p.id: copy.deepcopy(p) for p in products}
        self._lock = threading.Lock()
        self.commit_count = 0

    def list_profiles(self) -> list[ComplianceProfile]:
        return list(self._profiles)

    def list_pending_products(self) -> list[Product]:
        return [
            copy.deepcopy(p) for p in self._products.values()
            if p.verification_status == VerificationStatus.PENDING
        ]

    def get_product(self, product_id: str) -> Optional[Product]:
        product = self._products.get(product_id)
        return copy.deepcopy(product) if product else None

    def add_product(self, product: Product) -> None:
        self._products[product.id] = copy.deepcopy(product)

    def batch_update(self, updates: list[ProductUpdate]) -> None:
        with self._lock:
            missing = [u.product_id for u in updates if u.product_id not in self._products]
            if missing:
                raise KeyError(f"Unknown product(s): {', '.join(missing)}")
            for update in updates:
                product = self._products[update.product_id]
                product.verification_status = update.verification_status
                product.last_verification_date = update.last_verification_date
                product.compliance_summary = update.compliance_summary
            self.commit_count += 1


class InMemoryAuditLog(AuditSink):
    """Audit events kept in a list."""

    def __init__(self):
        self._events: list[AuditEvent] = []
        self._lock = threading.Lock()

    def append(self, event: AuditEvent) -> None:
        with self._lock:
            self._events.append(event)

    def list_events(self, entity_id: Optional[str] = None) -> list[AuditEvent]:
        return [e for e in self._events if entity_id is None or e.entity_id == entity_id]
