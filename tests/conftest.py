"""Shared fixtures: a resource directory and in-memory backup collaborators."""

import threading
from dataclasses import replace
from pathlib import Path
from typing import Callable, Dict, List, Optional

import pytest

from wxbackup.exporter.download_pool import Fetcher
from wxbackup.exporter.interfaces import (
    AccountContentLoader,
    BackupDiscovery,
    ExportBackend,
    ExportNotifier,
    MessageRenderer,
)
from wxbackup.exporter.models import Account, ClientInfo, Contact, ContactSet, Conversation, TemplateValues
from wxbackup.exporter.templates import TEMPLATE_NAMES

TEMPLATES = {
    "frame": "<title>%%DISPLAYNAME%%</title><body>%%BODY%%</body><script>var moreMsgs = %%JSONDATA%%;</script>",
    "msg": '<div class="msg">%%MESSAGE%%</div>',
    "listframe": "<h1>Chats%%USERNAME%%</h1><ul>%%TBODY%%</ul>",
    "listitem": '<li><img src="%%ITEMPICPATH%%"><a href="%%ITEMLINK%%">%%ITEMTEXT%%</a></li>',
}


def write_templates(work_dir: Path, templates_name: str = "templates", overrides: Optional[Dict[str, str]] = None) -> Path:
    base = work_dir / "res" / templates_name
    base.mkdir(parents=True, exist_ok=True)
    contents = dict(TEMPLATES, **(overrides or {}))
    for name in TEMPLATE_NAMES:
        (base / f"{name}.html").write_text(contents.get(name, ""), encoding="utf-8")
    return base


class FakeIndex:
    """Stands in for a parsed backup manifest."""

    def __init__(self, name: str = "primary"):
        self.name = name
        self.closed = False

    def close(self):
        self.closed = True


class FakeFetcher(Fetcher):
    """Writes the URL text into the destination instead of downloading."""

    def __init__(self, fail_urls=()):
        self.fail_urls = set(fail_urls)
        self.calls: List[str] = []
        self.user_agents: List[str] = []
        self._lock = threading.Lock()

    def fetch(self, url, destination, user_agent, timeout):
        with self._lock:
            self.calls.append(url)
            self.user_agents.append(user_agent)
        if url in self.fail_urls:
            raise OSError(f"unreachable: {url}")
        Path(destination).write_bytes(url.encode("utf-8"))


class FakeBackup(BackupDiscovery, AccountContentLoader):
    """A configurable backup with accounts, contacts and conversations.

    Every load hands out copies, so output names assigned during one run
    never leak into the next.
    """

    def __init__(self):
        self.accounts: List[Account] = []
        self.contacts: Dict[str, List[Contact]] = {}
        self.conversations: Dict[str, List[Conversation]] = {}
        self.messages: Dict[str, int] = {}
        self.texts: Dict[str, List[str]] = {}
        self.reported: Dict[str, int] = {}
        self.failing_accounts: set = set()
        self.fail_index = False
        self.has_shared_index = True
        self.client = ClientInfo(short_version="8.0.30", ios_version="16.1")
        self.batch_size = 100
        self.render_hook: Optional[Callable[[Conversation], None]] = None

        self.indices: List[FakeIndex] = []
        self.path_filters: list = []
        self.load_calls: list = []
        self.render_contexts: list = []
        self.rendered: List[str] = []
        self.fetcher = FakeFetcher()

    # Builder helpers

    def add_account(self, user_name, display_name="", portrait=""):
        account = Account(user_name=user_name, display_name=display_name, portrait=portrait)
        self.accounts.append(account)
        self.conversations.setdefault(user_name, [])
        return account

    def add_conversation(self, account_name, user_name, display_name="", messages=0,
                         last_message_time=0, portrait="", db_file="message_1.sqlite",
                         is_subscription=False, reported=None, texts=None):
        conversation = Conversation(
            user_name=user_name,
            display_name=display_name,
            portrait=portrait,
            db_file=db_file,
            last_message_time=last_message_time,
            is_subscription=is_subscription,
        )
        self.conversations.setdefault(account_name, []).append(conversation)
        self.messages[user_name] = len(texts) if texts is not None else messages
        if texts is not None:
            self.texts[user_name] = list(texts)
        if reported is not None:
            self.reported[user_name] = reported
        return conversation

    def add_contact(self, account_name, user_name, display_name=""):
        contact = Contact(user_name=user_name, display_name=display_name)
        self.contacts.setdefault(account_name, []).append(contact)
        return contact

    def backend(self):
        return ExportBackend(
            discovery=self,
            loader=self,
            renderer_factory=self._make_renderer,
            fetcher=self.fetcher,
        )

    # BackupDiscovery

    def load_index(self, source_root, path_filter=None):
        self.path_filters.append(path_filter)
        if self.fail_index:
            raise OSError("Manifest.db is missing")
        index = FakeIndex()
        self.indices.append(index)
        return index

    def load_shared_index(self, source_root):
        if not self.has_shared_index:
            return None
        index = FakeIndex("shared")
        self.indices.append(index)
        return index

    def list_accounts(self, index):
        return [replace(account) for account in self.accounts]

    def client_info(self, index):
        return self.client

    # AccountContentLoader

    def load(self, account, index, shared_index, client_info, detailed):
        self.load_calls.append((account.user_name, detailed))
        if account.user_name in self.failing_accounts:
            raise ValueError(f"corrupt contact database for {account.user_name}")
        contacts = ContactSet([replace(c) for c in self.contacts.get(account.user_name, [])] if detailed else [])
        return contacts, [replace(c) for c in self.conversations.get(account.user_name, [])]

    # MessageRenderer

    def _make_renderer(self, context):
        self.render_contexts.append(context)
        return _FakeRenderer(self)


class _FakeRenderer(MessageRenderer):

    def __init__(self, backup: FakeBackup):
        self.backup = backup

    def render(self, conversation, handler):
        backup = self.backup
        backup.rendered.append(conversation.user_name)
        if backup.render_hook is not None:
            backup.render_hook(conversation)

        total = backup.messages.get(conversation.user_name, 0)
        texts = backup.texts.get(conversation.user_name)
        count = 0
        for start in range(0, total, backup.batch_size):
            end = min(total, start + backup.batch_size)
            batch = [
                [TemplateValues("msg", [("%%MESSAGE%%", texts[i] if texts else f"{conversation.user_name}-{i}")])]
                for i in range(start, end)
            ]
            count += len(batch)
            if handler(batch):
                break
        return backup.reported.get(conversation.user_name, count)


class RecordingNotifier(ExportNotifier):
    """Collects lifecycle events in the order they arrive."""

    def __init__(self):
        self.events: list = []
        self.completed = threading.Event()

    def on_start(self):
        self.events.append(("start",))

    def on_progress(self, done, total):
        self.events.append(("progress", done, total))

    def on_complete(self, cancelled):
        self.events.append(("complete", cancelled))
        self.completed.set()

    @property
    def progress(self):
        return [e[1:] for e in self.events if e[0] == "progress"]

    @property
    def completions(self):
        return [e[1] for e in self.events if e[0] == "complete"]


@pytest.fixture
def work_dir(tmp_path):
    """Working directory with templates, an empty locale and the default avatar."""
    work = tmp_path / "work"
    write_templates(work)
    (work / "res" / "DefaultProfileHead@2x.png").write_bytes(b"\x89PNG default")
    return work


@pytest.fixture
def output_dir(tmp_path):
    out = tmp_path / "out"
    out.mkdir()
    return out


@pytest.fixture
def backup_dir(tmp_path):
    backup = tmp_path / "backup"
    backup.mkdir()
    return backup


@pytest.fixture
def fake_backup():
    return FakeBackup()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def fake_fetcher():
    return FakeFetcher()


@pytest.fixture
def template_writer():
    """Function that (re)writes a template set under a work directory."""
    return write_templates
