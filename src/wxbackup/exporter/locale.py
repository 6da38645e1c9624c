"""User-facing message lookup."""

import json
import logging
from pathlib import Path
from types import MappingProxyType
from typing import Any, Iterable, Mapping, Optional

logger = logging.getLogger(__name__)

LOCALE_FILE = "locale.txt"


class LocaleRegistry:
    """Immutable key -> string map; unknown keys resolve to themselves."""

    def __init__(self, strings: Optional[Mapping[str, str]] = None) -> None:
        self._strings: Mapping[str, str] = MappingProxyType(dict(strings or {}))

    @classmethod
    def from_entries(cls, entries: Iterable[Mapping[str, Any]]) -> "LocaleRegistry":
        """Build from ``{"key": ..., "value": ...}`` objects; the last duplicate wins."""
        strings = {}
        for entry in entries:
            key = entry.get("key")
            if not isinstance(key, str):
                continue
            value = entry.get("value")
            strings[key] = value if isinstance(value, str) else ""
        return cls(strings)

    @classmethod
    def load(cls, work_dir: Path) -> "LocaleRegistry":
        """Load ``<work_dir>/res/locale.txt``; a missing or broken file gives an empty registry."""
        path = Path(work_dir) / "res" / LOCALE_FILE
        if not path.exists():
            logger.debug(f"No locale file: {{'path': {str(path)!r}}}")
            return cls()
        try:
            entries = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            logger.warning(f"Cannot read locale file, using keys verbatim: {{'path': {str(path)!r}, 'error': {str(e)!r}}}")
            return cls()
        if not isinstance(entries, list):
            logger.warning(f"Locale file is not a JSON array: {{'path': {str(path)!r}}}")
            return cls()
        return cls.from_entries(e for e in entries if isinstance(e, dict))

    def get(self, key: str) -> str:
        return self._strings.get(key, key)

    def format(self, key: str, *args: Any) -> str:
        """Resolve ``key`` and apply printf-style ``args``.

        A translation whose placeholders do not match the arguments falls
        back to the untranslated key.
        """
        text = self.get(key)
        if not args:
            return text
        try:
            return text % args
        except (TypeError, ValueError):
            return key % args

    def __len__(self) -> int:
        return len(self._strings)

    def __contains__(self, key: object) -> bool:
        return key in self._strings
