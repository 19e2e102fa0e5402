import json
import logging

import pytest

from enst.config import env_flag, env_float, env_int, load_settings
from enst.logging_config import LOG_FILE_NAME, configure_logging


def test_defaults(monkeypatch):
    for key in ("ENST_WINDOW_SIZE_S", "ENST_DEFAULT_PRICE_USD_PER_MWH", "ENST_GPU_WEIGHT",
                "ENST_WORK_UNITS_MODE", "ENST_DATA_ROOT", "DEMO_MODE", "LOG_DIR", "LOG_LEVEL"):
        monkeypatch.delenv(key, raising=False)

    s = load_settings()
    assert s.window_size_s == 300
    assert s.window_size_us == 300_000_000
    assert s.default_price_usd_per_mwh == 50.0
    assert s.gpu_weight == 1.0
    assert s.work_units_mode == "infra"
    assert s.data_root is None
    assert s.demo_mode is False


def test_overrides_and_lenient_numbers(monkeypatch):
    monkeypatch.setenv("ENST_WINDOW_SIZE_S", "60")
    monkeypatch.setenv("ENST_DEFAULT_PRICE_USD_PER_MWH", "abc")
    monkeypatch.setenv("ENST_GPU_WEIGHT", "2.5")
    monkeypatch.setenv("ENST_WORK_UNITS_MODE", "DOMAIN")
    monkeypatch.setenv("DEMO_MODE", "yes")

    s = load_settings()
    assert s.window_size_s == 60
    assert s.default_price_usd_per_mwh == 50.0
    assert s.gpu_weight == 2.5
    assert s.work_units_mode == "domain"
    assert s.demo_mode is True


@pytest.mark.parametrize("value", ["0", "-5"])
def test_non_positive_window_falls_back(monkeypatch, value):
    monkeypatch.setenv("ENST_WINDOW_SIZE_S", value)
    assert load_settings().window_size_s == 300


def test_invalid_mode_is_fatal(monkeypatch):
    monkeypatch.setenv("ENST_WORK_UNITS_MODE", "gpu-hours")
    with pytest.raises(ValueError):
        load_settings()


def test_env_helpers(monkeypatch):
    monkeypatch.setenv("X_FLAG", "On")
    monkeypatch.setenv("X_INT", "nope")
    monkeypatch.setenv("X_FLOAT", " 1.5 ")
    assert env_flag("X_FLAG") is True
    assert env_int("X_INT", 7) == 7
    assert env_float("X_FLOAT", 0.0) == 1.5
    assert env_flag("X_MISSING", True) is True


def test_configure_logging_writes_json_lines(tmp_path):
    logger = configure_logging("DEBUG", str(tmp_path))
    logging.getLogger("enst.tests").info("hello %s", "world")
    for handler in logger.handlers:
        handler.flush()

    lines = (tmp_path / LOG_FILE_NAME).read_text().splitlines()
    entry = json.loads(lines[-1])
    assert entry["message"] == "hello world"
    assert entry["level"] == "INFO"
    assert entry["logger"] == "enst.tests"

    # idempotent
    again = configure_logging("INFO", None)
    assert len(again.handlers) == 1
