# config.py
import json
import logging
import os

logger = logging.getLogger("billing.config")

# Default configuration
DEFAULT_CONFIG = {
    "database": {
        "name": "billing.db",
        "backup_keep_days": 28,
    },
    "receipt": {
        "receipt_dir": "receipts",
        "format": "txt",
    },
    "export": {
        "default_dir": "exports",
    },
    "currency": "₹",
    "tax_rate": 0.18,
    "low_stock_threshold": 10,
    "preferences_file": "preferences.json",
    "logging": {
        "level": "INFO",
        "file": "logs/billing.log",
        "max_size": 1048576,
        "backup_count": 3,
    },
    "email": {
        "smtp_host": "localhost",
        "smtp_port": 587,
        "use_tls": True,
        "user": "",
        "password": "",
        "sender": "noreply@billingsoft.com",
    },
}


def merge_config(base, override):
    """Recursively overlay override onto a copy of base."""
    merged = dict(base)
    for key, value in (override or {}).items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = merge_config(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(config_path="config.json"):
    """Load configuration from JSON file or create default if not exists"""
    if os.path.exists(config_path):
        try:
            with open(config_path, 'r', encoding='utf-8') as f:
                config = merge_config(DEFAULT_CONFIG, json.load(f))
                logger.info(f"Configuration loaded from {config_path}")
                return config
        except (OSError, ValueError) as e:
            logger.error(f"Error loading config: {e}")
            return merge_config(DEFAULT_CONFIG, {})

    with open(config_path, 'w', encoding='utf-8') as f:
        json.dump(DEFAULT_CONFIG, f, indent=4, ensure_ascii=False)
        logger.info(f"Created default configuration at {config_path}")

    return merge_config(DEFAULT_CONFIG, {})


class Preferences:
    """
    Per-terminal switches that survive restarts: whether tax is charged and
    the display mode. Saved to a small JSON file on every change.
    """
    DEFAULTS = {"tax_enabled": True, "dark_mode": False}

    def __init__(self, path="preferences.json"):
        self.path = path
        self._values = dict(self.DEFAULTS)
        self._load()

    def _load(self):
        if not os.path.exists(self.path):
            return
        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                stored = json.load(f)
        except (OSError, ValueError) as e:
            logger.error(f"Could not read preferences from {self.path}: {e}")
            return
        for key in self.DEFAULTS:
            if isinstance(stored.get(key), bool):
                self._values[key] = stored[key]

    def save(self):
        folder = os.path.dirname(self.path)
        if folder:
            os.makedirs(folder, exist_ok=True)
        with open(self.path, 'w', encoding='utf-8') as f:
            json.dump(self._values, f, indent=4)

    @property
    def tax_enabled(self):
        return self._values["tax_enabled"]

    @property
    def dark_mode(self):
        return self._values["dark_mode"]

    def toggle_tax(self):
        self._values["tax_enabled"] = not self._values["tax_enabled"]
        self.save()
        return self.tax_enabled

    def toggle_dark_mode(self):
        self._values["dark_mode"] = not self._values["dark_mode"]
        self.save()
        return self.dark_mode
