"""Value objects passed across the inventory boundary."""

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class Reference:
    """Weak pointer to the record that caused a movement (lookup only)."""

    type: str
    id: str

    @classmethod
    def of(cls, type_: str, id_) -> "Reference":
        return cls(type=type_, id=str(id_))

    @classmethod
    def from_movement(cls, movement) -> "Reference | None":
        if not movement.reference_type:
            return None
        return cls(type=movement.reference_type, id=movement.reference_id)


@dataclass(frozen=True)
class ReservationHandle:
    movement_id: int
    product_id: int
    quantity: int
    expires_at: datetime | None


@dataclass(frozen=True)
class StockSummary:
    """Quantities derived from the ledger for one product."""

    product_id: int
    physical: int
    reserved: int
    available: int
    backorders_allowed: bool = False
    low_stock_threshold: int | None = None

    @property
    def is_low_stock(self) -> bool:
        if self.low_stock_threshold is None:
            return False
        return self.available <= self.low_stock_threshold

    @property
    def in_stock(self) -> bool:
        return self.available > 0
