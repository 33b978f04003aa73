"""Working-state and finalized reconciliation models.

``ReconciliationSnapshot`` is the mutable in-progress state persisted after
every edit. ``ReconciliationRecord`` is the frozen result of a save and the
unit sent to the ledger; its aliases are the ledger's camelCase wire names.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Self

from pydantic import BaseModel, ConfigDict, Field, NonNegativeInt

if TYPE_CHECKING:
    from cashrecon.catalog.core import CatalogIndex


class PaymentInputs(BaseModel):
    """Non-cash settlement channels and the VAT-exclusive discount."""

    model_config = ConfigDict(validate_assignment=True, allow_inf_nan=False)

    discount_base: float = 0.0
    credit_sales: float = 0.0
    credit_repayment: float = 0.0
    bank_pos: float = 0.0
    bank_transfer: float = 0.0
    cheque: float = 0.0


PAYMENT_FIELDS: tuple[str, ...] = tuple(PaymentInputs.model_fields)


class CashCount(BaseModel):
    """Physical cash counted, keyed by denomination label (``"500"``, ``"0.25"``)."""

    notes: dict[str, NonNegativeInt] = Field(default_factory=dict)
    coins: dict[str, NonNegativeInt] = Field(default_factory=dict)


@dataclass(frozen=True)
class LineEntry:
    code: str
    quantity: int


class ReconciliationSnapshot(BaseModel):
    route: str = ""
    date: str = ""
    quantities: dict[str, NonNegativeInt] = Field(default_factory=dict)
    payments: PaymentInputs = Field(default_factory=PaymentInputs)
    cash_count: CashCount = Field(default_factory=CashCount)

    def quantity(self, code: str) -> int:
        return self.quantities.get(code, 0)

    def line_entries(self, catalog: CatalogIndex) -> list[LineEntry]:
        """One entry per catalog item, in catalog order."""
        return [LineEntry(code=item.code, quantity=self.quantity(item.code)) for item in catalog]

    def drop_unknown_codes(self, catalog: CatalogIndex) -> list[str]:
        """Remove quantities for codes the catalog no longer carries."""
        stale = [code for code in self.quantities if code not in catalog]
        for code in stale:
            del self.quantities[code]
        return stale


class SoldLine(BaseModel):
    model_config = ConfigDict(frozen=True)

    category: str
    code: str
    name: str
    unit: str
    price: float
    quantity: int
    total: float


class CashNotes(BaseModel):
    model_config = ConfigDict(frozen=True)

    total: float
    # Note and coin counts together, keyed by denomination label.
    denominations: dict[str, int]


class ReconciliationRecord(BaseModel):
    """A finalized reconciliation, as delivered to the ledger."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    route: str
    date: str
    sales_items: tuple[SoldLine, ...] = Field(default=(), alias="salesItems")
    total_sales: float = Field(alias="totalSales")
    discount_base: float = Field(alias="discountBase")
    discount_with_vat: float = Field(alias="discountWithVAT")
    credit_sales: float = Field(alias="creditSales")
    credit_repayment: float = Field(alias="creditRepayment")
    bank_pos: float = Field(alias="bankPOS")
    bank_transfer: float = Field(alias="bankTransfer")
    cheque: float
    expected_cash: float = Field(alias="expectedCash")
    cash_notes: CashNotes = Field(alias="cashNotes")
    coins_total: float = Field(alias="coins")
    actual_cash: float = Field(alias="actualCash")
    difference: float
    timestamp: str

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")

    @classmethod
    def from_payload(cls, data: Any) -> Self:
        return cls.model_validate(data)
