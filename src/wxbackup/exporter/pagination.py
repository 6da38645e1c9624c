"""Split rendered messages into an inline page and a lazy-load payload."""

import json
from dataclasses import dataclass
from typing import List, Sequence

PAGE_SIZE = 1000
EMPTY_PAYLOAD = "[]"


@dataclass
class Page:
    """Inline markup plus the JSON payload for everything past the first page."""

    inline: List[str]
    payload: str
    deferred_count: int = 0

    @property
    def body(self) -> str:
        return "".join(self.inline)


def paginate(messages: Sequence[str], text_mode: bool = False, page_size: int = PAGE_SIZE) -> Page:
    """Embed the first ``page_size`` messages and defer the rest.

    Text mode never paginates. An unpaginated document always gets an
    empty JSON array so the frame's script block stays valid.
    """
    if text_mode or len(messages) <= page_size:
        return Page(inline=list(messages), payload=EMPTY_PAYLOAD)

    rest = list(messages[page_size:])
    return Page(
        inline=list(messages[:page_size]),
        # "<\/" keeps a closing script tag inside the data from ending the block
        payload=json.dumps(rest, ensure_ascii=False).replace("</", "<\\/"),
        deferred_count=len(rest),
    )
