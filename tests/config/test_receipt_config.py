"""Tests for receipt_config: packaged defaults, YAML overrides, env override, validation."""

from decimal import Decimal
from pathlib import Path

import pytest
import yaml

from receipt_config import DEFAULT_CONFIG_PATH, get_active_config
from receipt_config.loader import parse_config, parse_payment_method
from receipt_kernel.domain.dtos import PaymentMethod


@pytest.fixture(autouse=True)
def _no_database_env(monkeypatch):
    monkeypatch.delenv("RECEIPT_DATABASE_URL", raising=False)
    monkeypatch.delenv("DATABASE_URL", raising=False)


@pytest.fixture
def write_config(tmp_path):
    def _write(data: dict, name: str = "receipts.yaml") -> Path:
        path = tmp_path / name
        path.write_text(yaml.safe_dump(data), encoding="utf-8")
        return path

    return _write


def _minimal(**sections) -> dict:
    data = {"database": {"url": "sqlite:///x.db"}}
    data.update(sections)
    return data


class TestDefaults:
    def test_packaged_defaults(self):
        config = get_active_config()

        assert config.source == DEFAULT_CONFIG_PATH
        assert config.database.url == "sqlite:///receipts.db"
        assert config.correlative.prefix == "R-"
        assert config.correlative.width == 5
        assert str(config.correlative.format.of(11)) == "R-00011"
        assert config.storage.backend == "database"
        assert config.defaults.amount == Decimal("250.00")
        assert config.defaults.payment_method == PaymentMethod.CASH
        assert config.issuance.step_attempts == 3

    def test_missing_sections_fall_back(self, write_config):
        config = get_active_config(write_config(_minimal()))
        assert config.correlative.sequence_name == "receipt"
        assert config.issuance.render_timeout_seconds == 30.0
        assert config.issuer.name == ""

    def test_load_is_logged(self, captured_logs):
        config = get_active_config()
        record = next(r for r in captured_logs() if r["message"] == "receipt_config_loaded")
        assert record["checksum"] == config.checksum
        assert record["dialect"] == "sqlite"


class TestOverrides:
    def test_yaml_values(self, write_config):
        path = write_config(
            _minimal(
                correlative={"prefix": "REC-", "width": 8, "last_issued": 120},
                defaults={"amount": 300, "payment_method": "BBVA_EMPRESA"},
                issuer={"name": "Asociacion Los Pinos"},
            )
        )
        config = get_active_config(path)

        assert str(config.correlative.format.of(121)) == "REC-00000121"
        assert config.correlative.last_issued == 120
        assert config.defaults.amount == Decimal("300")
        assert config.defaults.payment_method == PaymentMethod.BBVA_EMPRESA
        assert config.issuer.name == "Asociacion Los Pinos"

    def test_float_amount_is_not_widened(self, write_config):
        config = get_active_config(write_config(_minimal(defaults={"amount": 250.1})))
        assert config.defaults.amount == Decimal("250.1")

    @pytest.mark.parametrize("env_var", ["RECEIPT_DATABASE_URL", "DATABASE_URL"])
    def test_env_overrides_database_url(self, monkeypatch, write_config, env_var):
        monkeypatch.setenv(env_var, "postgresql://receipts@db/receipts")
        config = get_active_config(write_config(_minimal()))
        assert config.database.url == "postgresql://receipts@db/receipts"

    def test_receipt_specific_env_wins(self, monkeypatch):
        monkeypatch.setenv("DATABASE_URL", "sqlite:///generic.db")
        monkeypatch.setenv("RECEIPT_DATABASE_URL", "sqlite:///specific.db")
        assert get_active_config().database.url == "sqlite:///specific.db"

    def test_relative_storage_directory_resolves_next_to_config(self, write_config, tmp_path):
        path = write_config(_minimal(storage={"backend": "filesystem", "directory": "pdfs"}))
        config = get_active_config(path)
        assert config.storage.directory == tmp_path / "pdfs"

    def test_checksum_tracks_content(self):
        a = parse_config(_minimal())
        b = parse_config(_minimal())
        c = parse_config(_minimal(correlative={"width": 6}))
        assert a.checksum == b.checksum
        assert a.checksum != c.checksum


class TestInvalid:
    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            get_active_config(tmp_path / "nope.yaml")

    def test_missing_database_url(self, write_config):
        with pytest.raises(KeyError):
            get_active_config(write_config({"database": {"echo": True}}))

    @pytest.mark.parametrize(
        "section",
        [
            {"correlative": {"prefix": "R1-"}},
            {"correlative": {"width": 0}},
            {"correlative": {"last_issued": -1}},
            {"issuance": {"render_timeout_seconds": 0}},
            {"issuance": {"step_attempts": 0}},
            {"storage": {"backend": "s3"}},
            {"storage": {"backend": "filesystem"}},
            {"defaults": {"payment_method": "Yape"}},
            {"defaults": {"amount": "abc"}},
        ],
    )
    def test_rejected_values(self, section):
        with pytest.raises(ValueError):
            parse_config(_minimal(**section))


@pytest.mark.parametrize("value", ["Efectivo", "CASH", PaymentMethod.CASH])
def test_payment_method_accepts_value_or_name(value):
    assert parse_payment_method(value) == PaymentMethod.CASH
