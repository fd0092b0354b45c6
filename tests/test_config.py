from __future__ import annotations

import json

from jonah.engine.config_io import DEFAULTS, load_config, meta_path


def test_meta_path(tmp_path):
    assert meta_path(tmp_path / "cave.tw") == tmp_path / "cave.meta.json"


def test_defaults_without_meta(tmp_path):
    cfg = load_config(tmp_path / "cave.tw")
    assert cfg == DEFAULTS
    assert load_config() == DEFAULTS


def test_shallow_merge_over_defaults(tmp_path):
    story = tmp_path / "cave.tw"
    meta_path(story).write_text(json.dumps({"ui": {"font_size": 28}, "junk": 1}), encoding="utf-8")
    cfg = load_config(story)
    assert cfg["ui"]["font_size"] == 28
    assert cfg["ui"]["width"] == DEFAULTS["ui"]["width"]
    assert cfg["story"]["start"] == "Start"
    assert "junk" not in cfg


def test_unreadable_meta_falls_back(tmp_path, caplog):
    story = tmp_path / "cave.tw"
    meta_path(story).write_text("{not json", encoding="utf-8")
    assert load_config(story) == DEFAULTS
    assert "ignoring unreadable" in caplog.text

