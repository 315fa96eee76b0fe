"""Tests for configuration loading and saving."""
from __future__ import annotations

import json
from unittest.mock import patch

from vocab_drill.config import DEFAULTS, Settings, load_settings, save_settings


class TestSettings:
    def test_defaults(self):
        s = Settings()
        assert s.default_direction == "geo-to-en"
        assert s.default_order == "shuffled"
        assert s.allow_reguess is False
        assert s.options_count == 4

    def test_to_dict(self):
        d = Settings().to_dict()
        assert d["test_sizes"] == [10, 20, 30]
        assert len(d) == 9  # all fields present
        assert set(d) == set(DEFAULTS)

    def test_to_dict_roundtrip(self):
        s = Settings(default_order="stable", page_size=50)
        s2 = Settings(**s.to_dict())
        assert s2.default_order == "stable"
        assert s2.page_size == 50

    def test_test_sizes_not_shared(self):
        a = Settings()
        a.test_sizes.append(40)
        assert Settings().test_sizes == [10, 20, 30]

    def test_db_full_path(self):
        s = Settings(db_path="data/words.db")
        assert s.db_full_path == s.project_root / "data" / "words.db"


class TestLoadSaveSettings:
    def test_load_from_file(self, tmp_path):
        config_path = tmp_path / "config.json"
        config_path.write_text(json.dumps({"default_direction": "en-to-geo", "page_size": 5}))

        with patch("vocab_drill.config.CONFIG_PATH", config_path):
            s = load_settings()
        assert s.default_direction == "en-to-geo"
        assert s.page_size == 5
        # Defaults for unspecified fields
        assert s.default_order == "shuffled"

    def test_load_missing_file(self, tmp_path):
        with patch("vocab_drill.config.CONFIG_PATH", tmp_path / "nonexistent.json"):
            s = load_settings()
        assert s == Settings()

    def test_legacy_shuffle_flag_migrated(self, tmp_path):
        config_path = tmp_path / "config.json"
        config_path.write_text(json.dumps({"shuffle": False}))

        with patch("vocab_drill.config.CONFIG_PATH", config_path):
            s = load_settings()
        assert s.default_order == "stable"

    def test_explicit_order_wins_over_legacy_flag(self, tmp_path):
        config_path = tmp_path / "config.json"
        config_path.write_text(json.dumps({"shuffle": False, "default_order": "shuffled"}))

        with patch("vocab_drill.config.CONFIG_PATH", config_path):
            s = load_settings()
        assert s.default_order == "shuffled"

    def test_save_creates_file(self, tmp_path):
        config_path = tmp_path / "config.json"
        with patch("vocab_drill.config.CONFIG_PATH", config_path):
            save_settings(Settings(allow_reguess=True))

        data = json.loads(config_path.read_text())
        assert data["allow_reguess"] is True

    def test_unknown_keys_ignored(self, tmp_path):
        config_path = tmp_path / "config.json"
        config_path.write_text(json.dumps({"page_size": 10, "theme": "dark"}))

        with patch("vocab_drill.config.CONFIG_PATH", config_path):
            s = load_settings()
        assert s.page_size == 10
        assert not hasattr(s, "theme")
