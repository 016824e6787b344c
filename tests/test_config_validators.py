# tests/test_config_validators.py
from datetime import date, datetime

import pytest

from vtech_workshop.config import load_settings
from vtech_workshop.errors import ValidationError
from vtech_workshop.utils.helpers import fmt_money, month_bounds, to_iso_date
from vtech_workshop.utils.validators import (
    normalize_mobile,
    parse_date,
    require_amount,
    require_quantity,
)


def test_settings_from_environment(monkeypatch, tmp_path):
    monkeypatch.setenv("VTECH_DB_PATH", str(tmp_path / "x.db"))
    monkeypatch.setenv("VTECH_PARTS_COST_RATIO", "0.75")
    monkeypatch.setenv("VTECH_ALLOW_PARTS_ON_CLOSED_JOBS", "yes")
    monkeypatch.setenv("VTECH_SERVICE_KEY", "abc")
    monkeypatch.setenv("VTECH_LOG_LEVEL", "debug")
    s = load_settings()
    assert s.db_path == tmp_path / "x.db"
    assert s.parts_cost_ratio == 0.75
    assert s.allow_parts_on_closed_jobs is True
    assert s.service_key == "abc"
    assert s.log_level == "DEBUG"


def test_settings_defaults(monkeypatch):
    for name in ("VTECH_PARTS_COST_RATIO", "VTECH_ALLOW_PARTS_ON_CLOSED_JOBS", "VTECH_SERVICE_KEY"):
        monkeypatch.delenv(name, raising=False)
    s = load_settings()
    assert s.parts_cost_ratio == 0.90
    assert s.allow_parts_on_closed_jobs is False
    assert s.service_key is None


@pytest.mark.parametrize("raw", ["1.5", "-0.1", "ninety"])
def test_bad_cost_ratio_is_rejected(monkeypatch, raw):
    monkeypatch.setenv("VTECH_PARTS_COST_RATIO", raw)
    with pytest.raises(ValueError):
        load_settings()


def test_dates():
    assert to_iso_date("2025-01-31 18:20:00") == "2025-01-31"
    assert to_iso_date(datetime(2025, 1, 31, 23, 59)) == "2025-01-31"
    assert to_iso_date(date(2025, 2, 1)) == "2025-02-01"
    assert parse_date("") is None
    with pytest.raises(ValidationError):
        parse_date("01/02/2025", "Payment date")
    assert month_bounds(2025, 4) == ("2025-04-01", "2025-04-30")


def test_money_and_quantity_inputs():
    assert require_amount("12.50", "Amount") == 12.5
    assert require_amount(-3, "Opening", signed=True) == -3
    with pytest.raises(ValidationError):
        require_amount(float("nan"), "Amount")
    with pytest.raises(ValidationError):
        require_amount(True, "Amount")
    assert require_quantity("4") == 4
    assert require_quantity(0, allow_zero=True) == 0
    with pytest.raises(ValidationError):
        require_quantity(-2)
    assert fmt_money(1234567.891) == "1,234,567.89"
    assert normalize_mobile("(080) 4123-4567") == "08041234567"
