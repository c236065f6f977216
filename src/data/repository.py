"""Stores consumed by the verification pipeline.

Persistence mechanics belong to the document database; the pipeline only
depends on the small contracts below. ``JsonPassportRepository`` and
``JsonlAuditLog`` are file-backed implementations used for local runs and
demos.
"""

import json
import logging
import os
import tempfile
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

from ..models.passport import (
    AuditEvent,
    ComplianceProfile,
    Product,
    ProductUpdate,
    VerificationStatus,
)


logger = logging.getLogger(__name__)

# Default data directory
DEFAULT_DATA_DIR = Path(__file__).parent.parent.parent / "data" / "passport"


class ProfileStore(ABC):
    """Read-only source of compliance profiles."""

    @abstractmethod
    def list_profiles(self) -> list[ComplianceProfile]: ...


class ProductStore(ABC):
    """Source and sink of product verification state."""

    @abstractmethod
    def list_pending_products(self) -> list[Product]: ...

    @abstractmethod
    def get_product(self, product_id: str) -> Optional[Product]: ...

    @abstractmethod
    def batch_update(self, updates: list[ProductUpdate]) -> None:
        """Apply all updates atomically, or none of them.

        No optimistic-concurrency check is made: a product changed by someone
        else since it was read is overwritten (last writer wins).
        """


class AuditSink(ABC):
    """Append-only store of audit events."""

    @abstractmethod
    def append(self, event: AuditEvent) -> None: ...

    @abstractmethod
    def list_events(self, entity_id: Optional[str] = None) -> list[AuditEvent]: ...


class JsonPassportRepository(ProfileStore, ProductStore):
    """Profiles and products stored as JSON files in a data directory."""

    PROFILES_FILE = "profiles.json"
    PRODUCTS_FILE = "products.json"

    def __init__(self, data_dir: Optional[Path] = None):
        """Initialize the repository.

        Args:
            data_dir: Directory containing profiles.json and products.json.
        """
        self.data_dir = Path(data_dir) if data_dir else DEFAULT_DATA_DIR
        self._lock = threading.Lock()

    def _load_json(self, filename: str) -> dict:
        """Load a JSON file from the data directory."""
        filepath = self.data_dir / filename
        if not filepath.exists():
            return {}
        with open(filepath, "r", encoding="utf-8") as f:
            return json.load(f)

    def _load_products(self) -> list[dict]:
        return self._load_json(self.PRODUCTS_FILE).get("products", [])

    def list_profiles(self) -> list[ComplianceProfile]:
        """Get all compliance profiles."""
        data = self._load_json(self.PROFILES_FILE)
        return [ComplianceProfile.from_dict(item) for item in data.get("profiles", [])]

    def list_products(self) -> list[Product]:
        """Get all products."""
        return [Product.from_dict(item) for item in self._load_products()]

    def list_pending_products(self) -> list[Product]:
        """Get products awaiting verification."""
        return [
            p for p in self.list_products()
            if p.verification_status == VerificationStatus.PENDING
        ]

    def get_product(self, product_id: str) -> Optional[Product]:
        """Get a product by ID."""
        for item in self._load_products():
            if item.get("id") == product_id:
                return Product.from_dict(item)
        return None

    def batch_update(self, updates: list[ProductUpdate]) -> None:
        """Apply updates and replace the products file in one step.

        Raises:
            KeyError: If an update names an unknown product. Nothing is written.
            OSError: If the file cannot be replaced. Nothing is written.
        """
        if not updates:
            return

        with self._lock:
            products = self._load_products()
            by_id = {item["id"]: item for item in products}
            missing = [u.product_id for u in updates if u.product_id not in by_id]
            if missing:
                raise KeyError(f"Unknown product(s): {', '.join(missing)}")

            for update in updates:
                by_id[update.product_id].update(update.to_dict())

            self._write_atomic(self.PRODUCTS_FILE, {"products": products})
        logger.debug("Committed %d product update(s) to %s", len(updates), self.data_dir)

    def _write_atomic(self, filename: str, data: dict) -> None:
        """Write through a temp file and rename over the target."""
        self.data_dir.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=self.data_dir, prefix=f".{filename}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
            os.replace(tmp_name, self.data_dir / filename)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise


class JsonlAuditLog(AuditSink):
    """Audit events appended to a JSON Lines file, one event per line."""

    def __init__(self, path: Path):
        self.path = Path(path)
        self._lock = threading.Lock()

    def append(self, event: AuditEvent) -> None:
        """Append an event. Existing lines are never rewritten."""
        line = json.dumps(event.to_dict(), sort_keys=True)
        with self._lock:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, "a", encoding="utf-8") as f:
                f.write(line + "\n")

    def list_events(self, entity_id: Optional[str] = None) -> list[AuditEvent]:
        """Read events back, oldest first."""
        if not self.path.exists():
            return []
        events = []
        with open(self.path, "r", encoding="utf-8") as f:
            for line in f:
                if not line.strip():
                    continue
                event = AuditEvent.from_dict(json.loads(line))
                if entity_id is None or event.entity_id == entity_id:
                    events.append(event)
        return events
