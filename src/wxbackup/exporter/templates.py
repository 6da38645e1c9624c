"""Named markup fragments with ``%%NAME%%`` placeholder substitution."""

import logging
from pathlib import Path
from types import MappingProxyType
from typing import Iterable, Mapping, Optional, Tuple

logger = logging.getLogger(__name__)

MARKER = "%%"
PLACEHOLDER_PREFIX = "%"

TEMPLATE_NAMES = (
    "frame", "msg", "video", "notice", "system", "audio", "image", "card",
    "emoji", "plainshare", "share", "thumb", "listframe", "listitem",
)


def strip_unfilled(content: str) -> str:
    """Remove every ``%%...%%`` span left in ``content``.

    Scanning stops at an opening marker without a closing one; that tail is
    kept as-is.
    """
    pos = content.find(MARKER)
    while pos != -1:
        end = content.find(MARKER, pos + len(MARKER))
        if end == -1:
            break
        content = content[:pos] + content[end + len(MARKER):]
        pos = content.find(MARKER, pos)
    return content


def replace_placeholders(content: str, values: Iterable[Tuple[str, str]]) -> str:
    """Literal, in-order replacement of placeholder keys."""
    for key, value in values:
        if key.startswith(PLACEHOLDER_PREFIX):
            content = content.replace(key, value)
    return content


def substitute(content: str, values: Iterable[Tuple[str, str]]) -> str:
    """``replace_placeholders``, then drop markers no value filled."""
    return strip_unfilled(replace_placeholders(content, values))


class TemplateRegistry:
    """Read-only set of templates loaded once per run."""

    def __init__(self, templates: Optional[Mapping[str, str]] = None) -> None:
        self._templates: Mapping[str, str] = MappingProxyType(dict(templates or {}))

    @classmethod
    def load(cls, work_dir: Path, templates_name: str = "templates") -> "TemplateRegistry":
        """Read ``<work_dir>/res/<templates_name>/<name>.html`` for every known template."""
        base = Path(work_dir) / "res" / templates_name
        templates = {}
        missing = []
        for name in TEMPLATE_NAMES:
            path = base / f"{name}.html"
            try:
                templates[name] = path.read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError):
                templates[name] = ""
                missing.append(name)
        if missing:
            logger.warning(f"Templates missing or unreadable: {{'dir': {str(base)!r}, 'names': {missing}}}")
        return cls(templates)

    def get(self, name: str) -> str:
        """Raw markup for ``name``; empty string when unknown."""
        return self._templates.get(name, "")

    def render(self, name: str, values: Iterable[Tuple[str, str]]) -> str:
        return substitute(self.get(name), values)

    def fill(self, name: str, **fields: str) -> str:
        """Fill a document template from keyword names (``TBODY`` -> ``%%TBODY%%``).

        Values are inserted literally and nothing is stripped afterwards:
        they carry already rendered messages, whose own text may contain
        ``%%``.
        """
        return replace_placeholders(self.get(name), [(f"{MARKER}{k}{MARKER}", v) for k, v in fields.items()])

    def __contains__(self, name: object) -> bool:
        return name in self._templates
