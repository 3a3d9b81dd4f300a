"""Translation lookup used for every user-facing string."""

import json
import logging
import os
import re
from typing import Optional

logger = logging.getLogger(__name__)

_PLACEHOLDER = re.compile(r"\{(\w+)\}")


class Translator:
    """Maps a key to a display string, falling back to the supplied default.

    Placeholders written as ``{name}`` are filled from ``params``; unknown
    placeholders are left untouched. Never raises.
    """

    def __init__(self, translations: Optional[dict[str, str]] = None) -> None:
        self.translations: dict[str, str] = dict(translations or {})

    @classmethod
    def from_file(cls, path: str) -> "Translator":
        """Load a flat JSON key -> string catalog. A missing or broken file yields fallbacks only."""
        if not os.path.exists(path):
            logger.warning(f"Translations file not found: {path}")
            return cls()
        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Could not load translations from {path}: {e}")
            return cls()
        if not isinstance(data, dict):
            logger.warning(f"Translations file {path} is not a JSON object")
            return cls()
        logger.info(f"Loaded {len(data)} translation(s) from {path}")
        return cls({str(k): str(v) for k, v in data.items()})

    def __call__(self, key: str, fallback: str, params: Optional[dict[str, str]] = None) -> str:
        template = self.translations.get(key) or fallback
        if not params:
            return template
        return _PLACEHOLDER.sub(lambda m: str(params.get(m.group(1), m.group(0))), template)
