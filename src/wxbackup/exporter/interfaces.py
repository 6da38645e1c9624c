"""Collaborators the exporter consumes.

Backup parsing, database decoding and message rendering live outside this
package; the exporter only talks to them through these base classes.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, List, Optional, Tuple

from wxbackup.common import normalize_path

from .locale import LocaleRegistry
from .models import Account, ClientInfo, ContactSet, Contact, Conversation, TemplateValues
from .options import ExportOption

# Receives one batch of rendered messages; returns True to stop rendering.
BatchHandler = Callable[[List[List[TemplateValues]]], bool]
# Decides whether a logical backup path is indexed at all.
PathFilter = Callable[[str], bool]


class BackupDiscovery(ABC):
    """Loads backup indices and finds the accounts inside them."""

    @abstractmethod
    def load_index(self, source_root: Path, path_filter: Optional[PathFilter] = None) -> Any:
        """Load the primary index. Must raise if the backup cannot be read."""

    @abstractmethod
    def load_shared_index(self, source_root: Path) -> Optional[Any]:
        """Load the shared (app-group) index, or return None when absent."""

    @abstractmethod
    def list_accounts(self, index: Any) -> List[Account]:
        """Accounts found in the primary index."""

    def client_info(self, index: Any) -> Optional[ClientInfo]:
        """Client version metadata, if the backup carries it."""
        return None


class AccountContentLoader(ABC):
    """Loads an account's contacts and conversations."""

    @abstractmethod
    def load(
        self,
        account: Account,
        index: Any,
        shared_index: Optional[Any],
        client_info: Optional[ClientInfo],
        detailed: bool,
    ) -> Tuple[ContactSet, List[Conversation]]:
        """Return contacts and conversations.

        With ``detailed=False`` contacts are not parsed (an empty set is
        fine) and conversations only need listing metadata.
        """


@dataclass
class RenderContext:
    """Everything a renderer is bound to for one account."""

    account: Contact
    contacts: ContactSet
    index: Any
    shared_index: Optional[Any]
    options: ExportOption
    download_pool: Any  # DownloadPool
    locale: LocaleRegistry
    output_base: Path
    user_base: str


class MessageRenderer(ABC):
    """Turns a conversation's messages into template values."""

    @abstractmethod
    def render(self, conversation: Conversation, handler: BatchHandler) -> int:
        """Stream batches to ``handler`` and return the number of messages exported.

        A batch is a list of messages, each message a list of
        TemplateValues. Rendering must stop without raising once
        ``handler`` returns True.
        """


RendererFactory = Callable[[RenderContext], MessageRenderer]


class ExportNotifier:
    """Receives run lifecycle events. The base class ignores them."""

    def on_start(self) -> None:
        pass

    def on_progress(self, done: int, total: int) -> None:
        pass

    def on_complete(self, cancelled: bool) -> None:
        pass


@dataclass
class ExportBackend:
    """The set of collaborators a run needs, as returned by a backend factory."""

    discovery: BackupDiscovery
    loader: AccountContentLoader
    renderer_factory: RendererFactory
    fetcher: Optional[Any] = None  # Fetcher used by download pools


def default_path_filter(path: str) -> bool:
    """Skip heavy media subtrees (``<a>/<b>/Audio|Img|OpenData|Video/...``) for previews."""
    parts = normalize_path(path).split('/')
    if len(parts) > 3 and parts[2] in ('Audio', 'Img', 'OpenData', 'Video'):
        return False
    return True
