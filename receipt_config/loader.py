"""
Configuration Loader (``receipt_config.loader``).

Responsibility
--------------
Loads a YAML configuration file and parses it into the frozen
``receipt_config.schema`` dataclasses.  Runtime code obtains configuration
through ``receipt_config.get_active_config()`` only.

Invariants enforced
-------------------
* Required keys (``database.url``) raise ``KeyError`` when missing; no
  silent defaults for them.
* Every parsed object is a frozen dataclass from ``schema.py``.
* ``compute_checksum`` is deterministic for identical input.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
* Out-of-range or unknown values  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from receipt_config.schema import (
    CorrelativeConfig,
    DatabaseConfig,
    IssuanceConfig,
    IssuerConfig,
    ReceiptConfig,
    ReceiptDefaults,
    StorageConfig,
)
from receipt_kernel.domain.dtos import PaymentMethod


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path, encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def parse_decimal(value: Any, field_name: str) -> Decimal:
    """Parse a money value from YAML without going through float."""
    if isinstance(value, float):
        value = repr(value)
    try:
        return Decimal(str(value))
    except InvalidOperation as exc:
        raise ValueError(f"{field_name} must be a decimal number, got {value!r}") from exc


def parse_payment_method(value: Any) -> PaymentMethod:
    """Accept either the display value ("Efectivo") or the member name ("CASH")."""
    if isinstance(value, PaymentMethod):
        return value
    for method in PaymentMethod:
        if value in (method.value, method.name):
            return method
    raise ValueError(
        f"Unknown payment method {value!r}; expected one of "
        f"{[m.value for m in PaymentMethod]}"
    )


def parse_database(data: dict[str, Any]) -> DatabaseConfig:
    """Parse the ``database`` section.  ``url`` is required."""
    return DatabaseConfig(
        url=data["url"],
        echo=bool(data.get("echo", False)),
        pool_size=int(data.get("pool_size", 5)),
        max_overflow=int(data.get("max_overflow", 10)),
        pool_timeout=float(data.get("pool_timeout", 30.0)),
        pool_recycle=int(data.get("pool_recycle", 3600)),
        lock_timeout_seconds=float(data.get("lock_timeout_seconds", 10.0)),
    )


def parse_correlative(data: dict[str, Any]) -> CorrelativeConfig:
    return CorrelativeConfig(
        sequence_name=str(data.get("sequence_name", "receipt")),
        prefix=str(data.get("prefix", "R-")),
        width=int(data.get("width", 5)),
        last_issued=int(data.get("last_issued", 0)),
    )


def parse_issuance(data: dict[str, Any]) -> IssuanceConfig:
    return IssuanceConfig(
        render_timeout_seconds=float(data.get("render_timeout_seconds", 30.0)),
        render_workers=int(data.get("render_workers", 2)),
        step_attempts=int(data.get("step_attempts", 3)),
        backoff_seconds=float(data.get("backoff_seconds", 0.05)),
        sequencer_attempts=int(data.get("sequencer_attempts", 3)),
    )


def parse_storage(data: dict[str, Any], base_dir: Path | None = None) -> StorageConfig:
    """
    Parse the ``storage`` section.

    A relative ``directory`` is resolved against ``base_dir`` (the folder
    holding the configuration file).
    """
    directory = data.get("directory")
    path: Path | None = None
    if directory:
        path = Path(directory).expanduser()
        if not path.is_absolute() and base_dir is not None:
            path = base_dir / path
    return StorageConfig(backend=str(data.get("backend", "database")), directory=path)


def parse_defaults(data: dict[str, Any]) -> ReceiptDefaults:
    return ReceiptDefaults(
        amount=parse_decimal(data.get("amount", "250.00"), "defaults.amount"),
        concept=str(data.get("concept", "Elaboracion de Expediente Tecnico")),
        payment_method=parse_payment_method(data.get("payment_method", "Efectivo")),
    )


def parse_issuer(data: dict[str, Any]) -> IssuerConfig:
    return IssuerConfig(
        name=str(data.get("name", "")),
        tax_id=str(data.get("tax_id", "")),
        address=str(data.get("address", "")),
    )


def parse_config(
    data: dict[str, Any],
    source: Path | None = None,
) -> ReceiptConfig:
    """
    Parse a full configuration mapping.

    Raises:
        KeyError: If ``database`` or ``database.url`` is missing.
        ValueError: If any value is out of range.
    """
    base_dir = source.parent if source is not None else None
    return ReceiptConfig(
        database=parse_database(data["database"]),
        correlative=parse_correlative(data.get("correlative") or {}),
        issuance=parse_issuance(data.get("issuance") or {}),
        storage=parse_storage(data.get("storage") or {}, base_dir),
        defaults=parse_defaults(data.get("defaults") or {}),
        issuer=parse_issuer(data.get("issuer") or {}),
        checksum=compute_checksum(data),
        source=source,
    )


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON form of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
