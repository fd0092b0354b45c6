from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

DEFAULTS = {
    "story": {
        "title": None,
        "start": "Start",
        "start_list": "StartPassages",
    },
    "ui": {
        "width": 900,
        "height": 720,
        "font_path": None,
        "font_size": 20,
        "fade_ms": 300,
    },
}


def meta_path(story_path: Path) -> Path:
    """`story.tw` -> `story.meta.json` next to it."""
    return Path(story_path).with_suffix(".meta.json")


def _merge(data: Optional[dict]) -> dict:
    out = {}
    data = data if isinstance(data, dict) else {}
    for section, defaults in DEFAULTS.items():
        merged = dict(defaults)
        merged.update(dict(data.get(section) or {}))
        out[section] = merged
    return out


def load_config(story_path: Optional[Path] = None) -> dict:
    """Story settings from `<story>.meta.json`, shallow-merged over DEFAULTS."""
    if story_path is None:
        return _merge(None)
    p = meta_path(story_path)
    try:
        if p.exists():
            return _merge(json.loads(p.read_text(encoding="utf-8")))
    except (OSError, ValueError) as e:
        logger.warning(f"ignoring unreadable {p}: {e}")
    return _merge(None)

