"""Collision-safe output names for accounts and conversations."""

import logging
import re
from typing import Iterable, Optional, Set

from .errors import NameResolutionError
from .models import Contact

logger = logging.getLogger(__name__)

# Characters no supported filesystem accepts in a file name
INVALID_CHARS = re.compile(r'[\\/:*?"<>|\x00-\x1f\x7f]')
RESERVED_NAMES = {
    'CON', 'PRN', 'AUX', 'NUL',
    'COM1', 'COM2', 'COM3', 'COM4', 'COM5', 'COM6', 'COM7', 'COM8', 'COM9',
    'LPT1', 'LPT2', 'LPT3', 'LPT4', 'LPT5', 'LPT6', 'LPT7', 'LPT8', 'LPT9'
}
MAX_NAME_LENGTH = 200


def remove_invalid_chars(name: str) -> str:
    """Drop characters that are invalid in file names and trim the result."""
    name = INVALID_CHARS.sub('', name or '')
    # Trailing dots and spaces are silently dropped on Windows
    return name.strip()[:MAX_NAME_LENGTH].rstrip('. ')


def is_valid_file_name(name: str) -> bool:
    if not name or name in ('.', '..'):
        return False
    if INVALID_CHARS.search(name):
        return False
    return name.split('.')[0].upper() not in RESERVED_NAMES


class NameResolver:
    """Assigns unique names within one scope (all accounts, or one account's chats).

    The first entity to claim a base name keeps it; later ones get ``_2``,
    ``_3``, ... in the order they are resolved.
    """

    def __init__(self, used: Optional[Set[str]] = None) -> None:
        self.used: Set[str] = used if used is not None else set()

    def resolve(self, candidates: Iterable[str]) -> str:
        """Return and record a unique name from the first valid candidate.

        Raises:
            NameResolutionError: If no candidate is a valid file name
        """
        tried = []
        for candidate in candidates:
            tried.append(candidate)
            base = remove_invalid_chars(candidate)
            if not is_valid_file_name(base):
                continue

            name = base
            suffix = 2
            while name in self.used:
                name = f"{base}_{suffix}"
                suffix += 1
            self.used.add(name)
            if name != base:
                logger.debug(f"Name collision resolved: {{'base': {base!r}, 'name': {name!r}}}")
            return name

        raise NameResolutionError("No usable file name", candidates=tried)

    def assign(self, entity: Contact) -> str:
        """Resolve a name for ``entity`` and store it as its output name."""
        entity.output_file_name = self.resolve(entity.name_candidates())
        return entity.output_file_name

    def __contains__(self, name: object) -> bool:
        return name in self.used
