"""Pure reconciliation arithmetic.

Amounts accumulate as floats and are rounded half-up to two decimals only
for display and when materialized into a record, so recomputing an
unchanged snapshot always yields identical results.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import ROUND_HALF_UP, Decimal
import enum

from cashrecon.catalog.core import CatalogIndex
from cashrecon.core.config import (
    BALANCE_EPSILON,
    COIN_DENOMINATIONS,
    CURRENCY,
    NOTE_DENOMINATIONS,
    VAT_MULTIPLIER,
    ReconConfig,
    denomination_label,
)
from cashrecon.reconcile.models import (
    CashNotes,
    PaymentInputs,
    ReconciliationRecord,
    ReconciliationSnapshot,
    SoldLine,
)

_CENT = Decimal("0.01")


class BalanceStatus(enum.Enum):
    BALANCED = "balanced"
    SHORTAGE = "shortage"
    EXCESS = "excess"


@dataclass(frozen=True, slots=True)
class SalesSummary:
    total: float
    sold_count: int


@dataclass(frozen=True, slots=True)
class ProgressSteps:
    """Checklist shown to the operator while working through a day."""

    route_selected: bool
    sales_entered: bool
    cash_counted: bool
    balanced: bool


@dataclass(frozen=True, slots=True)
class ReconciliationTotals:
    total_sales: float
    sold_count: int
    discount_with_vat: float
    expected_cash: float
    credit_sales: float
    bank_deposits: float
    notes_total: float
    coins_total: float
    actual_cash: float
    difference: float
    status: BalanceStatus
    status_message: str
    progress: ProgressSteps


def round_money(value: float) -> float:
    return float(Decimal(repr(value)).quantize(_CENT, rounding=ROUND_HALF_UP))


def format_money(value: float) -> str:
    return f"{Decimal(repr(value)).quantize(_CENT, rounding=ROUND_HALF_UP)}"


def sales_total(catalog: CatalogIndex, quantities: Mapping[str, int]) -> SalesSummary:
    total = 0.0
    sold = 0
    for item in catalog:
        qty = quantities.get(item.code, 0)
        if qty > 0:
            sold += 1
        total += qty * item.unit_price
    return SalesSummary(total=total, sold_count=sold)


def discount_with_vat(discount_base: float, multiplier: float = VAT_MULTIPLIER) -> float:
    return discount_base * multiplier


def expected_cash(
    total_sales: float, discount_incl_vat: float, payments: PaymentInputs
) -> float:
    """Cash that should be on hand; negative results are kept as-is."""
    return (
        total_sales
        - discount_incl_vat
        - payments.credit_sales
        + payments.credit_repayment
        - payments.bank_pos
        - payments.bank_transfer
        - payments.cheque
    )


def denomination_total(
    counts: Mapping[str, int], denominations: tuple[float, ...]
) -> float:
    total = 0.0
    for denomination in denominations:
        total += counts.get(denomination_label(denomination), 0) * denomination
    return total


def notes_total(
    counts: Mapping[str, int], denominations: tuple[float, ...] = NOTE_DENOMINATIONS
) -> float:
    return denomination_total(counts, denominations)


def coins_total(
    counts: Mapping[str, int], denominations: tuple[float, ...] = COIN_DENOMINATIONS
) -> float:
    return denomination_total(counts, denominations)


def classify_difference(
    difference: float, epsilon: float = BALANCE_EPSILON
) -> BalanceStatus:
    if abs(difference) < epsilon:
        return BalanceStatus.BALANCED
    if difference < 0:
        return BalanceStatus.SHORTAGE
    return BalanceStatus.EXCESS


def describe_difference(
    difference: float,
    *,
    epsilon: float = BALANCE_EPSILON,
    currency: str = CURRENCY,
) -> str:
    status = classify_difference(difference, epsilon)
    if status is BalanceStatus.BALANCED:
        return "Balanced"
    if status is BalanceStatus.SHORTAGE:
        return f"Cash Short by {currency} {format_money(abs(difference))}"
    return f"Cash Over by {currency} {format_money(difference)}"


def recompute(
    snapshot: ReconciliationSnapshot,
    catalog: CatalogIndex,
    config: ReconConfig | None = None,
) -> ReconciliationTotals:
    """Derive every total from the snapshot. Never mutates its inputs."""
    config = config or ReconConfig()
    payments = snapshot.payments

    sales = sales_total(catalog, snapshot.quantities)
    discount = discount_with_vat(payments.discount_base, config.vat_multiplier)
    expected = expected_cash(sales.total, discount, payments)
    notes = notes_total(snapshot.cash_count.notes, config.note_denominations)
    coins = coins_total(snapshot.cash_count.coins, config.coin_denominations)
    actual = notes + coins
    difference = actual - expected
    status = classify_difference(difference, config.balance_epsilon)

    progress = ProgressSteps(
        route_selected=bool(snapshot.route),
        sales_entered=sales.total > 0,
        cash_counted=actual > 0,
        balanced=status is BalanceStatus.BALANCED and actual > 0,
    )

    return ReconciliationTotals(
        total_sales=sales.total,
        sold_count=sales.sold_count,
        discount_with_vat=discount,
        expected_cash=expected,
        credit_sales=payments.credit_sales,
        bank_deposits=payments.bank_pos + payments.bank_transfer + payments.cheque,
        notes_total=notes,
        coins_total=coins,
        actual_cash=actual,
        difference=difference,
        status=status,
        status_message=describe_difference(
            difference, epsilon=config.balance_epsilon, currency=config.currency
        ),
        progress=progress,
    )


def sold_lines(
    snapshot: ReconciliationSnapshot, catalog: CatalogIndex
) -> tuple[SoldLine, ...]:
    lines: list[SoldLine] = []
    for item in catalog:
        qty = snapshot.quantity(item.code)
        if qty <= 0:
            continue
        lines.append(
            SoldLine(
                category=item.category,
                code=item.code,
                name=item.name,
                unit=item.unit,
                price=item.unit_price,
                quantity=qty,
                total=round_money(qty * item.unit_price),
            )
        )
    return tuple(lines)


def finalize_record(
    snapshot: ReconciliationSnapshot,
    catalog: CatalogIndex,
    config: ReconConfig | None = None,
    *,
    now: datetime | None = None,
) -> ReconciliationRecord:
    """Freeze the snapshot into the record sent to the ledger."""
    config = config or ReconConfig()
    totals = recompute(snapshot, catalog, config)
    payments = snapshot.payments
    cash = snapshot.cash_count

    denominations = {label: cash.notes.get(label, 0) for label in config.note_labels}
    denominations.update({label: cash.coins.get(label, 0) for label in config.coin_labels})

    expected = round_money(totals.expected_cash)
    actual = round_money(totals.actual_cash)
    timestamp = (now or datetime.now(UTC)).isoformat()

    return ReconciliationRecord(
        route=snapshot.route,
        date=snapshot.date,
        sales_items=sold_lines(snapshot, catalog),
        total_sales=round_money(totals.total_sales),
        discount_base=payments.discount_base,
        discount_with_vat=round_money(totals.discount_with_vat),
        credit_sales=payments.credit_sales,
        credit_repayment=payments.credit_repayment,
        bank_pos=payments.bank_pos,
        bank_transfer=payments.bank_transfer,
        cheque=payments.cheque,
        expected_cash=expected,
        cash_notes=CashNotes(
            total=round_money(totals.notes_total), denominations=denominations
        ),
        coins_total=round_money(totals.coins_total),
        actual_cash=actual,
        difference=round_money(actual - expected),
        timestamp=timestamp,
    )
