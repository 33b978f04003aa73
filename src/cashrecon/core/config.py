from __future__ import annotations

from dataclasses import dataclass
import os
from pathlib import Path

# Discount is entered VAT-exclusive and settled VAT-inclusive.
VAT_MULTIPLIER = 1.15

NOTE_DENOMINATIONS: tuple[float, ...] = (500, 100, 50, 20, 10, 5)
COIN_DENOMINATIONS: tuple[float, ...] = (2, 1, 0.5, 0.25)

# Differences smaller than this are float noise, not a cash discrepancy.
BALANCE_EPSILON = 0.01

HEARTBEAT_INTERVAL_SECONDS = 15.0
REQUEST_TIMEOUT_SECONDS = 30.0

CURRENCY = "SAR"
MODULE_TAG = "cash"
CLIENT_NAME = "Web Client"

SNAPSHOT_KEY = "cashReconciliationData"
PENDING_QUEUE_KEY = "pendingChanges"
DEVICE_ID_KEY = "userId"

DEFAULT_DATA_DIR = "~/.cashrecon"


def denomination_label(denomination: float) -> str:
    """Wire label for a denomination: ``500`` for whole values, ``0.50`` otherwise."""
    if float(denomination).is_integer():
        return str(int(denomination))
    return f"{denomination:.2f}"


@dataclass(frozen=True, slots=True)
class ReconConfig:
    """Policy constants and endpoints for one device session."""

    ledger_url: str = ""
    data_dir: Path = Path(DEFAULT_DATA_DIR).expanduser()
    vat_multiplier: float = VAT_MULTIPLIER
    note_denominations: tuple[float, ...] = NOTE_DENOMINATIONS
    coin_denominations: tuple[float, ...] = COIN_DENOMINATIONS
    balance_epsilon: float = BALANCE_EPSILON
    heartbeat_interval: float = HEARTBEAT_INTERVAL_SECONDS
    request_timeout: float = REQUEST_TIMEOUT_SECONDS
    currency: str = CURRENCY
    module_tag: str = MODULE_TAG
    log_level: str = "INFO"

    @property
    def note_labels(self) -> tuple[str, ...]:
        return tuple(denomination_label(d) for d in self.note_denominations)

    @property
    def coin_labels(self) -> tuple[str, ...]:
        return tuple(denomination_label(d) for d in self.coin_denominations)


def _positive_float_env(name: str, default: float) -> float:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError as e:
        raise ValueError(f"{name} must be a number, got {raw!r}") from e
    if value <= 0:
        raise ValueError(f"{name} must be greater than zero")
    return value


def load_config_from_env() -> ReconConfig:
    """Load session config from ``CASHRECON_*`` environment variables."""
    ledger_url = os.environ.get("CASHRECON_LEDGER_URL", "").strip()
    data_dir = Path(
        os.environ.get("CASHRECON_DATA_DIR", DEFAULT_DATA_DIR).strip()
        or DEFAULT_DATA_DIR
    ).expanduser()

    log_level = os.environ.get("CASHRECON_LOG_LEVEL", "INFO").strip().upper()
    if log_level not in {"TRACE", "DEBUG", "INFO", "WARNING", "ERROR"}:
        raise ValueError(
            "CASHRECON_LOG_LEVEL must be one of: TRACE, DEBUG, INFO, WARNING, ERROR"
        )

    return ReconConfig(
        ledger_url=ledger_url,
        data_dir=data_dir,
        heartbeat_interval=_positive_float_env(
            "CASHRECON_HEARTBEAT_SECONDS", HEARTBEAT_INTERVAL_SECONDS
        ),
        request_timeout=_positive_float_env(
            "CASHRECON_REQUEST_TIMEOUT", REQUEST_TIMEOUT_SECONDS
        ),
        log_level=log_level,
    )
