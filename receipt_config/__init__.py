"""
receipt_config -- single public entrypoint for issuance configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  Services receive the resulting
    ``ReceiptConfig`` (or values taken from it); none of them read files
    or environment variables directly.

Architecture position:
    Configuration -- sits beside ``receipt_kernel`` and below
    ``receipt_services``.  The kernel never imports from this package.

Invariants enforced:
    - Single entrypoint: all runtime config flows through ``get_active_config()``.
    - Environment override: ``RECEIPT_DATABASE_URL`` (then ``DATABASE_URL``)
      replaces ``database.url`` when set.
    - Deterministic checksum: same effective settings, same checksum.

Failure modes:
    - ``FileNotFoundError`` -- the configuration file does not exist.
    - ``KeyError`` -- a required key is missing.
    - ``ValueError`` -- a value is out of range.

Audit relevance:
    Every successful ``get_active_config()`` call emits a
    ``receipt_config_loaded`` log entry with the source path and checksum,
    tying issued receipts back to the settings that governed them.
"""

from __future__ import annotations

import os
from pathlib import Path

from receipt_config.loader import load_yaml_file, parse_config
from receipt_config.schema import (
    CorrelativeConfig,
    DatabaseConfig,
    IssuanceConfig,
    IssuerConfig,
    ReceiptConfig,
    ReceiptDefaults,
    StorageConfig,
)
from receipt_kernel.logging_config import get_logger

_logger = get_logger("config")

DEFAULT_CONFIG_PATH = Path(__file__).parent / "defaults.yaml"

DATABASE_URL_ENV_VARS = ("RECEIPT_DATABASE_URL", "DATABASE_URL")


def get_active_config(config_path: Path | str | None = None) -> ReceiptConfig:
    """The ONLY public configuration entrypoint.

    Args:
        config_path: YAML file to load.  Defaults to the packaged
            ``defaults.yaml``.

    Returns:
        Frozen ReceiptConfig.

    Raises:
        FileNotFoundError: If ``config_path`` does not exist.
        KeyError: If a required key is missing.
        ValueError: If a value is invalid.
    """
    path = Path(config_path) if config_path is not None else DEFAULT_CONFIG_PATH
    data = load_yaml_file(path)

    for env_var in DATABASE_URL_ENV_VARS:
        override = os.environ.get(env_var)
        if override:
            data = {**data, "database": {**(data.get("database") or {}), "url": override}}
            break

    config = parse_config(data, source=path)

    _logger.info(
        "receipt_config_loaded",
        extra={
            "source": str(path),
            "checksum": config.checksum,
            "dialect": config.database.url.split(":", 1)[0],
            "storage_backend": config.storage.backend,
            "correlative_prefix": config.correlative.prefix,
            "correlative_width": config.correlative.width,
        },
    )
    return config


__all__ = [
    "CorrelativeConfig",
    "DEFAULT_CONFIG_PATH",
    "DatabaseConfig",
    "IssuanceConfig",
    "IssuerConfig",
    "ReceiptConfig",
    "ReceiptDefaults",
    "StorageConfig",
    "get_active_config",
]
