from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path

CONFIG_PATH = Path(__file__).resolve().parent.parent / "config.json"

DEFAULTS = {
    "db_path": "vocab.db",
    "default_direction": "geo-to-en",
    "default_order": "shuffled",
    "allow_reguess": False,
    "test_sizes": [10, 20, 30],
    "default_test_size": 10,
    "options_count": 4,
    "page_size": 20,
    "log_level": "INFO",
}


@dataclass
class Settings:
    db_path: str = DEFAULTS["db_path"]
    default_direction: str = DEFAULTS["default_direction"]
    default_order: str = DEFAULTS["default_order"]
    allow_reguess: bool = DEFAULTS["allow_reguess"]
    test_sizes: list[int] = field(default_factory=lambda: list(DEFAULTS["test_sizes"]))
    default_test_size: int = DEFAULTS["default_test_size"]
    options_count: int = DEFAULTS["options_count"]
    page_size: int = DEFAULTS["page_size"]
    log_level: str = DEFAULTS["log_level"]

    @property
    def project_root(self) -> Path:
        return Path(__file__).resolve().parent.parent

    @property
    def db_full_path(self) -> Path:
        return self.project_root / self.db_path

    def to_dict(self) -> dict:
        return {
            "db_path": self.db_path,
            "default_direction": self.default_direction,
            "default_order": self.default_order,
            "allow_reguess": self.allow_reguess,
            "test_sizes": list(self.test_sizes),
            "default_test_size": self.default_test_size,
            "options_count": self.options_count,
            "page_size": self.page_size,
            "log_level": self.log_level,
        }


def load_settings() -> Settings:
    if CONFIG_PATH.exists():
        raw = json.loads(CONFIG_PATH.read_text())
        # Migrate: shuffle (bool) -> default_order
        if "shuffle" in raw:
            raw.setdefault("default_order", "shuffled" if raw["shuffle"] else "stable")
            del raw["shuffle"]
        known = {f.name for f in Settings.__dataclass_fields__.values()}
        filtered = {k: v for k, v in raw.items() if k in known}
        return Settings(**filtered)
    return Settings()


def save_settings(settings: Settings) -> None:
    CONFIG_PATH.write_text(json.dumps(settings.to_dict(), indent=4) + "\n")
