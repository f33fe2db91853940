"""
Receipt issuance configuration schema.

Typed, frozen view of ``defaults.yaml`` (or an operator-supplied file).
The loader parses YAML into these types; runtime code only ever sees a
``ReceiptConfig``.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from pathlib import Path

from receipt_kernel.domain.correlative import CorrelativeFormat
from receipt_kernel.domain.dtos import PaymentMethod

# ---------------------------------------------------------------------------
# Persistence
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DatabaseConfig:
    """Engine settings passed to ``receipt_kernel.db.init_engine_from_url``."""

    url: str
    echo: bool = False
    pool_size: int = 5
    max_overflow: int = 10
    pool_timeout: float = 30.0
    pool_recycle: int = 3600
    lock_timeout_seconds: float = 10.0

    def __post_init__(self) -> None:
        if not self.url:
            raise ValueError("database.url must not be empty")
        if self.lock_timeout_seconds <= 0:
            raise ValueError("database.lock_timeout_seconds must be > 0")


# ---------------------------------------------------------------------------
# Correlative numbering
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CorrelativeConfig:
    """Counter name and display format for receipt numbers."""

    sequence_name: str = "receipt"
    prefix: str = "R-"
    width: int = 5
    # Counter value written by init-db when the counter does not exist yet
    last_issued: int = 0

    def __post_init__(self) -> None:
        if not self.sequence_name:
            raise ValueError("correlative.sequence_name must not be empty")
        if self.last_issued < 0:
            raise ValueError("correlative.last_issued must be >= 0")
        # Rejects digit prefixes and bad widths
        CorrelativeFormat(prefix=self.prefix, width=self.width)

    @property
    def format(self) -> CorrelativeFormat:
        return CorrelativeFormat(prefix=self.prefix, width=self.width)


# ---------------------------------------------------------------------------
# Saga behaviour
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class IssuanceConfig:
    """Timeouts and retry bounds for the issuance saga."""

    render_timeout_seconds: float = 30.0
    render_workers: int = 2
    step_attempts: int = 3
    backoff_seconds: float = 0.05
    sequencer_attempts: int = 3

    def __post_init__(self) -> None:
        if self.render_timeout_seconds <= 0:
            raise ValueError("issuance.render_timeout_seconds must be > 0")
        if self.render_workers < 1:
            raise ValueError("issuance.render_workers must be >= 1")
        if self.step_attempts < 1 or self.sequencer_attempts < 1:
            raise ValueError("issuance attempts must be >= 1")
        if self.backoff_seconds < 0:
            raise ValueError("issuance.backoff_seconds must be >= 0")


@dataclass(frozen=True)
class StorageConfig:
    """Where rendered receipts are kept: ``database`` or ``filesystem``."""

    backend: str = "database"
    directory: Path | None = None

    def __post_init__(self) -> None:
        if self.backend not in ("database", "filesystem"):
            raise ValueError(f"storage.backend must be database or filesystem, got {self.backend!r}")
        if self.backend == "filesystem" and self.directory is None:
            raise ValueError("storage.directory is required for the filesystem backend")


# ---------------------------------------------------------------------------
# Form defaults
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ReceiptDefaults:
    """Values pre-filled on a new receipt."""

    amount: Decimal = Decimal("250.00")
    concept: str = "Elaboracion de Expediente Tecnico"
    payment_method: PaymentMethod = PaymentMethod.CASH


@dataclass(frozen=True)
class IssuerConfig:
    """Organization printed on the receipt header."""

    name: str = ""
    tax_id: str = ""
    address: str = ""


# ---------------------------------------------------------------------------
# Root
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ReceiptConfig:
    """Complete runtime configuration."""

    database: DatabaseConfig
    correlative: CorrelativeConfig
    issuance: IssuanceConfig
    storage: StorageConfig
    defaults: ReceiptDefaults
    issuer: IssuerConfig
    checksum: str = ""
    source: Path | None = None
