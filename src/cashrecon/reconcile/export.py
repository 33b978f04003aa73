"""CSV report for a finalized reconciliation.

The layout is consumed by downstream spreadsheets and must stay stable:
a title line, date and route, the sold lines, then the cash summary.
"""

from __future__ import annotations

import csv
import io
import re

from cashrecon.reconcile.models import ReconciliationRecord

REPORT_TITLE = "Daily Cash Reconciliation Report"
SALES_HEADER = ("Category", "Code", "Item", "Unit", "Price", "Quantity", "Total")


def format_number(value: float | int) -> str:
    """Shortest plain rendering: ``116`` rather than ``116.0``, ``11.5`` as is."""
    if isinstance(value, int):
        return str(value)
    if value.is_integer():
        return str(int(value))
    return repr(value)


_UNSAFE_FILENAME_CHARS = re.compile(r"[\\/:*?\"<>|\x00-\x1f]+")


def _filename_part(value: str, fallback: str) -> str:
    cleaned = _UNSAFE_FILENAME_CHARS.sub("_", value).strip(" .")
    return cleaned or fallback


def report_filename(record: ReconciliationRecord) -> str:
    """File name for the report; path separators in the route become ``_``."""
    route = _filename_part(record.route, "")
    sales_date = _filename_part(record.date, "unknown")
    return f"cash_reconciliation_{route}_{sales_date}.csv"


def render_report_csv(record: ReconciliationRecord) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")

    writer.writerow([REPORT_TITLE])
    writer.writerow(["Date", record.date or "unknown"])
    writer.writerow(["Route", record.route or "Not Selected"])
    writer.writerow([])

    writer.writerow(["SALES ITEMS"])
    writer.writerow(SALES_HEADER)
    for line in record.sales_items:
        writer.writerow(
            [
                line.category,
                line.code,
                line.name,
                line.unit,
                format_number(line.price),
                format_number(line.quantity),
                format_number(line.total),
            ]
        )
    writer.writerow([])

    writer.writerow(["CASH RECONCILIATION"])
    summary = (
        ("Total Sales", record.total_sales),
        ("Discount (Base)", record.discount_base),
        ("Discount (+15%)", record.discount_with_vat),
        ("Credit Sales", record.credit_sales),
        ("Credit Repayment", record.credit_repayment),
        ("Bank POS", record.bank_pos),
        ("Bank Transfer", record.bank_transfer),
        ("Cheque", record.cheque),
        ("Expected Cash", record.expected_cash),
        ("Actual Cash", record.actual_cash),
        ("Difference", record.difference),
    )
    for label, amount in summary:
        writer.writerow([label, format_number(amount)])

    return buffer.getvalue()
