import json
import logging

from config import DEFAULT_CONFIG, Preferences, load_config, merge_config
from logger import configure_logger


def test_load_config_creates_defaults(tmp_path):
    path = tmp_path / "config.json"
    config = load_config(str(path))
    assert path.exists()
    assert config["database"]["name"] == "billing.db"
    assert config["tax_rate"] == 0.18


def test_load_config_merges_partial_file(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"database": {"name": "shop.db"}, "currency": "$"}),
                    encoding="utf-8")
    config = load_config(str(path))
    assert config["database"]["name"] == "shop.db"
    assert config["database"]["backup_keep_days"] == 28
    assert config["currency"] == "$"
    assert config["logging"] == DEFAULT_CONFIG["logging"]


def test_load_config_falls_back_on_broken_file(tmp_path):
    path = tmp_path / "config.json"
    path.write_text("{not json", encoding="utf-8")
    assert load_config(str(path))["low_stock_threshold"] == 10


def test_merge_config_leaves_base_untouched():
    base = {"a": {"b": 1, "c": 2}}
    merged = merge_config(base, {"a": {"b": 5}})
    assert merged == {"a": {"b": 5, "c": 2}}
    assert base == {"a": {"b": 1, "c": 2}}


def test_preferences_persist(tmp_path):
    path = str(tmp_path / "prefs" / "preferences.json")
    prefs = Preferences(path)
    assert prefs.tax_enabled is True
    assert prefs.dark_mode is False

    assert prefs.toggle_tax() is False
    assert prefs.toggle_dark_mode() is True

    reloaded = Preferences(path)
    assert reloaded.tax_enabled is False
    assert reloaded.dark_mode is True


def test_preferences_ignore_bad_values(tmp_path):
    path = tmp_path / "preferences.json"
    path.write_text(json.dumps({"tax_enabled": "yes"}), encoding="utf-8")
    assert Preferences(str(path)).tax_enabled is True


def test_logger_writes_rotating_file(tmp_path):
    log_file = tmp_path / "logs" / "billing.log"
    logger = configure_logger({"logging": {"level": "debug", "file": str(log_file)}})
    try:
        assert logger.level == logging.DEBUG
        logging.getLogger("billing.checkout").warning("Removed 1 invalid item(s) from cart")
        for handler in logger.handlers:
            handler.flush()
        assert "billing.checkout - WARNING" in log_file.read_text(encoding="utf-8")
    finally:
        for handler in logger.handlers[:]:
            logger.removeHandler(handler)
            handler.close()
