"""Export option flags."""

from enum import IntFlag


class ExportOption(IntFlag):
    """Independently toggleable export switches.

    TEXT_MODE        every message inline, no lazy-load payload
    DESC             newest conversations first
    ICON_IN_SESSION  emoji/icons live under each conversation's own folder
    IGNORE_AVATAR    no avatar downloads, no Portrait/ placeholder
    IGNORE_EMOJI     no Emoji/ asset folders
    IGNORE_HTML_ENC  insert links and labels raw (no URL/HTML escaping)
    """

    NONE = 0
    TEXT_MODE = 1 << 0
    DESC = 1 << 1
    ICON_IN_SESSION = 1 << 2
    IGNORE_AVATAR = 1 << 3
    IGNORE_EMOJI = 1 << 4
    IGNORE_HTML_ENC = 1 << 5


def set_flag(options: ExportOption, flag: ExportOption, enabled: bool) -> ExportOption:
    """Return ``options`` with ``flag`` switched on or off."""
    if enabled:
        return options | flag
    return options & ~flag
