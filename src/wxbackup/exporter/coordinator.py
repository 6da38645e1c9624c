"""Export pipeline coordinator.

Drives one export run end to end:
- Loads the backup indices and lists accounts
- Per account: output folder, contacts and conversations, a fresh
  download pool, one document per conversation, the account index
- Writes the top-level index and reports start/progress/completion

The whole run executes as a single future on a one-thread executor. The
run thread is the only writer of the output tree; download pools only
write asset files. Cancellation is cooperative and checked before each
account, before each conversation, and after every rendered batch.
"""

import logging
import shutil
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor, wait
from contextlib import ExitStack
from dataclasses import dataclass, field
from enum import Enum
from html import escape
from pathlib import Path
from typing import Any, Dict, FrozenSet, Iterable, List, Mapping, Optional, Tuple
from urllib.parse import quote

from wxbackup.common import LogContext, classify_error, combine_path, is_writable_directory

from .config import WXBackupConfig
from .download_pool import DownloadPool
from .errors import BackupLoadError, NameResolutionError, OutputDirectoryError, RunInProgressError
from .interfaces import (
    ExportBackend,
    ExportNotifier,
    PathFilter,
    RenderContext,
    default_path_filter,
)
from .locale import LocaleRegistry
from .models import DEFAULT_PORTRAIT, Account, ClientInfo, ContactSet, Conversation
from .naming import NameResolver
from .options import ExportOption, set_flag
from .pagination import paginate
from .progress import format_duration
from .templates import TemplateRegistry

logger = logging.getLogger(__name__)


class RunState(str, Enum):
    """Lifecycle of an export run."""

    IDLE = "idle"
    RUNNING = "running"
    CANCELLING = "cancelling"
    COMPLETED = "completed"
    COMPLETED_CANCELLED = "completed_cancelled"


@dataclass(frozen=True)
class RunSettings:
    """Options captured when a run starts; setters cannot reach a running export."""

    options: ExportOption = ExportOption.NONE
    ext_name: str = "html"
    templates_name: str = "templates"
    filter: Mapping[str, FrozenSet[str]] = field(default_factory=dict)

    def has(self, flag: ExportOption) -> bool:
        return bool(self.options & flag)

    def selects_account(self, account: Account) -> bool:
        return not self.filter or account.user_name in self.filter

    def selects_conversation(self, account: Account, conversation: Conversation) -> bool:
        if not self.filter:
            return True
        allowed = self.filter.get(account.user_name)
        return allowed is not None and conversation.user_name in allowed


@dataclass
class RunContext:
    """Per-run state shared by the export steps."""

    settings: RunSettings
    templates: TemplateRegistry
    locale: LocaleRegistry
    index: Any = None
    shared_index: Any = None
    client_info: Optional[ClientInfo] = None


class Exporter:
    """Runs exports in the background and reports through an ExportNotifier.

    Usage:
        exporter = Exporter(work_dir, backup_dir, output_dir, backend, notifier)
        exporter.set_text_mode(True)
        if exporter.start():
            exporter.wait_for_completion()

    Templates and locale strings are reloaded from ``work_dir`` at every
    ``start()``, so edits between runs take effect.
    """

    def __init__(
        self,
        work_dir: Path,
        backup_dir: Path,
        output_dir: Path,
        backend: ExportBackend,
        notifier: Optional[ExportNotifier] = None,
        download_workers: int = 4,
        download_timeout: float = 30.0,
        download_max_attempts: int = 2,
    ) -> None:
        self.work_dir = Path(work_dir)
        self.backup_dir = Path(backup_dir)
        self.output_dir = Path(output_dir)
        self.backend = backend
        self.notifier = notifier or ExportNotifier()
        self.download_workers = download_workers
        self.download_timeout = download_timeout
        self.download_max_attempts = download_max_attempts

        self._options = ExportOption.NONE
        self._ext_name = "html"
        self._templates_name = "templates"
        self._filter: Dict[str, FrozenSet[str]] = {}

        self._state = RunState.IDLE
        self._state_lock = threading.Lock()
        self._cancel_event = threading.Event()
        self._future: Optional[Future] = None
        self._failed = False

        # Replaced at every start(); kept for messages logged outside a run
        self.locale = LocaleRegistry()
        self.templates = TemplateRegistry()

    @classmethod
    def from_config(
        cls,
        config: WXBackupConfig,
        backend: ExportBackend,
        notifier: Optional[ExportNotifier] = None,
    ) -> "Exporter":
        """Build an exporter with every option taken from ``config``."""
        export = config.export
        exporter = cls(
            work_dir=Path(export.work_dir),
            backup_dir=Path(export.backup_dir),
            output_dir=Path(export.output_dir),
            backend=backend,
            notifier=notifier,
            download_workers=config.download.workers,
            download_timeout=config.download.timeout,
            download_max_attempts=config.download.max_attempts,
        )
        exporter._options = export.options()
        exporter.set_ext_name(export.ext_name)
        exporter.set_templates_name(export.templates_name)
        exporter.filter_users_and_sessions(export.filter)
        return exporter

    # ------------------------------------------------------------------
    # Run control

    @property
    def state(self) -> RunState:
        with self._state_lock:
            if self._state == RunState.RUNNING and self._cancel_event.is_set():
                return RunState.CANCELLING
            return self._state

    @property
    def is_running(self) -> bool:
        with self._state_lock:
            return self._state == RunState.RUNNING

    @property
    def failed(self) -> bool:
        """True when the last run was aborted by a fatal error, such as an unreadable backup."""
        return self._failed

    @property
    def options(self) -> ExportOption:
        return self._options

    def start(self) -> bool:
        """Launch a run in the background.

        Returns False (and logs why) when a run is already active or the
        output directory is not a writable directory.
        """
        with self._state_lock:
            # The previous run is not over until on_complete has returned
            busy = self._future is not None and not self._future.done()
            if self._state == RunState.RUNNING or busy:
                logger.warning(self.locale.get("Previous task has not completed."))
                return False
            try:
                self._check_output_dir()
            except OutputDirectoryError as e:
                logger.error(self.locale.format("Can't access output directory: %s", str(self.output_dir)))
                logger.debug(e.describe())
                return False

            settings = self._snapshot_settings()
            self._cancel_event.clear()
            self._failed = False
            self._state = RunState.RUNNING

            executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="export-run")
            self._future = executor.submit(self._run, settings)
            # The worker thread keeps running the submitted run
            executor.shutdown(wait=False)
        return True

    def cancel(self) -> None:
        """Ask the running export to stop at the next checkpoint."""
        self._cancel_event.set()

    def wait_for_completion(self, timeout: Optional[float] = None) -> bool:
        """Block until the current run finishes. Returns False on timeout."""
        future = self._future
        if future is None:
            return True
        done, _ = wait([future], timeout=timeout)
        return bool(done)

    def _check_output_dir(self) -> None:
        if not self.output_dir.is_dir():
            raise OutputDirectoryError("Output directory does not exist", path=str(self.output_dir))
        if not is_writable_directory(self.output_dir):
            raise OutputDirectoryError("Output directory is not writable", path=str(self.output_dir))

    def _ensure_idle(self) -> None:
        if self.is_running:
            raise RunInProgressError("Cannot change export settings while a run is active")

    def _snapshot_settings(self) -> RunSettings:
        return RunSettings(
            options=self._options,
            ext_name=self._ext_name,
            templates_name=self._templates_name,
            filter=dict(self._filter),
        )

    # ------------------------------------------------------------------
    # Configuration

    def _set_option(self, flag: ExportOption, enabled: bool) -> None:
        self._ensure_idle()
        self._options = set_flag(self._options, flag, enabled)

    def set_text_mode(self, text_mode: bool = True) -> None:
        self._set_option(ExportOption.TEXT_MODE, text_mode)

    def set_order(self, asc: bool = True) -> None:
        self._set_option(ExportOption.DESC, not asc)

    def save_files_in_session_folder(self, flag: bool = True) -> None:
        self._set_option(ExportOption.ICON_IN_SESSION, flag)

    def set_ignore_avatar(self, flag: bool = True) -> None:
        self._set_option(ExportOption.IGNORE_AVATAR, flag)

    def set_ignore_emoji(self, flag: bool = True) -> None:
        self._set_option(ExportOption.IGNORE_EMOJI, flag)

    def set_ignore_html_encoding(self, flag: bool = True) -> None:
        self._set_option(ExportOption.IGNORE_HTML_ENC, flag)

    def set_ext_name(self, ext_name: str) -> None:
        self._ensure_idle()
        self._ext_name = ext_name.lstrip(".") or "html"

    def set_templates_name(self, templates_name: str) -> None:
        self._ensure_idle()
        self._templates_name = templates_name

    def filter_users_and_sessions(self, users_and_sessions: Optional[Mapping[str, Iterable[str]]]) -> None:
        """Restrict the export to the given account ids and their conversation ids."""
        self._ensure_idle()
        self._filter = {
            user: frozenset(sessions)
            for user, sessions in (users_and_sessions or {}).items()
        }

    # ------------------------------------------------------------------
    # Preview

    def load_preview(self) -> List[Tuple[Account, List[Conversation]]]:
        """List accounts and their conversations without exporting anything.

        Media subtrees are excluded from indexing and contacts are not
        parsed. Raises RunInProgressError while a run is active and
        BackupLoadError if the backup cannot be read.
        """
        self._ensure_idle()
        settings = self._snapshot_settings()
        discovery = self.backend.discovery

        with ExitStack() as stack:
            index, shared_index = self._load_backup(stack, default_path_filter)
            client_info = self._load_client_info(index)

            result = []
            for account in discovery.list_accounts(index):
                _, conversations = self._load_account_content(
                    account, index, shared_index, client_info, settings, detailed=False
                )
                result.append((account, conversations))
        return result

    # ------------------------------------------------------------------
    # Run

    def _run(self, settings: RunSettings) -> None:
        start_time = time.time()
        cancelled = False
        self._notify("on_start")
        try:
            cancelled = self._run_export(settings)
        except Exception as e:
            logger.exception(f"Export run failed: {{'error_category': {classify_error(e)!r}}}")
            self._failed = True
            cancelled = self._cancel_event.is_set()
        finally:
            elapsed = format_duration(time.time() - start_time)
            message = "Cancelled in %s." if cancelled else "Completed in %s."
            logger.info(self.locale.format(message, elapsed))
            with self._state_lock:
                self._state = RunState.COMPLETED_CANCELLED if cancelled else RunState.COMPLETED
            self._notify("on_complete", cancelled)

    def _run_export(self, settings: RunSettings) -> bool:
        """Export every selected account. Returns True if the run was cancelled."""
        self.locale = LocaleRegistry.load(self.work_dir)
        self.templates = TemplateRegistry.load(self.work_dir, settings.templates_name)
        ctx = RunContext(settings=settings, templates=self.templates, locale=self.locale)
        locale = self.locale

        logger.info(locale.format("Backup: %s", str(self.backup_dir)))

        with ExitStack() as stack:
            try:
                ctx.index, ctx.shared_index = self._load_backup(stack, None)
            except BackupLoadError as e:
                logger.error(locale.format("Failed to parse the backup data in the directory: %s", str(self.backup_dir)))
                logger.debug(e.describe())
                self._failed = True
                return False
            ctx.client_info = self._load_client_info(ctx.index)

            logger.info(locale.get("Finding accounts..."))
            try:
                accounts = self.backend.discovery.list_accounts(ctx.index)
            except Exception:
                logger.exception(locale.get("Failed to find account."))
                self._failed = True
                return False
            logger.info(locale.format("%d account(s) found.", len(accounts)))

            account_names = NameResolver()
            items = []
            for account in accounts:
                if self._cancel_event.is_set():
                    break
                if not settings.selects_account(account):
                    continue
                try:
                    account_names.assign(account)
                except NameResolutionError:
                    logger.warning(locale.format("Can't build directory name for user: %s. Skip it.", account.user_name))
                    continue

                try:
                    with LogContext(logger, account=account.user_name):
                        exported = self._export_account(ctx, account)
                except Exception as e:
                    logger.exception(
                        f"Account export failed: {{'account': {account.user_name!r}, "
                        f"'error_category': {classify_error(e)!r}}}"
                    )
                    continue
                if not exported:
                    continue

                folder = account.output_file_name
                items.append(self._list_item(
                    ctx,
                    pic_path=f"{self._encode_url(ctx, folder)}/Portrait/{account.local_portrait}",
                    link=f"{self._encode_url(ctx, folder)}/index.{settings.ext_name}",
                    text=account.display_name,
                ))

            html = ctx.templates.fill("listframe", USERNAME="", TBODY="".join(items))
            self._write_document(self.output_dir / f"index.{settings.ext_name}", html)

        return self._cancel_event.is_set()

    def _load_backup(self, stack: ExitStack, path_filter: Optional[PathFilter]) -> Tuple[Any, Any]:
        """Load primary and shared indices and register their release on ``stack``."""
        discovery = self.backend.discovery
        try:
            index = discovery.load_index(self.backup_dir, path_filter)
        except Exception as e:
            raise BackupLoadError("Failed to load backup index", path=str(self.backup_dir)) from e
        if index is None:
            raise BackupLoadError("Backup index is empty", path=str(self.backup_dir))
        _release_on_exit(stack, index)

        shared_index = None
        try:
            shared_index = discovery.load_shared_index(self.backup_dir)
        except Exception as e:
            logger.info(f"Shared backup index unavailable: {{'error': {str(e)!r}}}")
        if shared_index is not None:
            _release_on_exit(stack, shared_index)
        return index, shared_index

    def _load_client_info(self, index: Any) -> Optional[ClientInfo]:
        try:
            client_info = self.backend.discovery.client_info(index)
        except Exception as e:
            logger.info(f"Client version unavailable: {{'error': {str(e)!r}}}")
            return None
        if client_info is not None:
            logger.info(self.locale.format("Wechat Version: %s", client_info.short_version))
        return client_info

    def _load_account_content(
        self,
        account: Account,
        index: Any,
        shared_index: Any,
        client_info: Optional[ClientInfo],
        settings: RunSettings,
        detailed: bool,
    ) -> Tuple[ContactSet, List[Conversation]]:
        contacts, conversations = self.backend.loader.load(
            account, index, shared_index, client_info, detailed
        )
        contacts = contacts if contacts is not None else ContactSet()
        conversations = sorted(
            conversations,
            key=lambda c: c.last_message_time,
            reverse=settings.has(ExportOption.DESC),
        )
        for conversation in conversations:
            if conversation.is_display_name_empty():
                contact = contacts.get(conversation.hash)
                if contact is not None and not contact.is_display_name_empty():
                    conversation.display_name = contact.display_name
        return contacts, conversations

    # ------------------------------------------------------------------
    # Account

    def _create_account_folder(self, account: Account) -> Optional[Path]:
        """Create the account folder, falling back to the identifier hash."""
        for folder in dict.fromkeys((account.output_file_name, account.hash)):
            base = self.output_dir / folder
            try:
                base.mkdir(exist_ok=True)
            except OSError as e:
                logger.warning(f"Cannot create account folder: {{'path': {str(base)!r}, 'error': {str(e)!r}}}")
                continue
            account.output_file_name = folder
            return base
        return None

    def _export_account(self, ctx: RunContext, account: Account) -> bool:
        """Export one account. Returns False if the account was skipped."""
        settings = ctx.settings
        locale = ctx.locale

        output_base = self._create_account_folder(account)
        if output_base is None:
            logger.error(locale.format("Can't create directory for user: %s. Skip it.", account.user_name))
            return False

        if not settings.has(ExportOption.IGNORE_AVATAR):
            self._prepare_portrait_dir(output_base / "Portrait")
        if not (settings.has(ExportOption.ICON_IN_SESSION) and settings.has(ExportOption.IGNORE_EMOJI)):
            (output_base / "Emoji").mkdir(exist_ok=True)

        logger.info(locale.format("Handling account: %s, Wechat Id: %s", account.display_name, account.user_name))
        contacts, conversations = self._load_account_content(
            account, ctx.index, ctx.shared_index, ctx.client_info, settings, detailed=True
        )
        logger.info(locale.format("%d chats found.", len(conversations)))
        myself = contacts.ensure_account(account)

        user_agent = ctx.client_info.build_user_agent() if ctx.client_info else ""
        logger.debug(f"Download pool: {{'user_agent': {user_agent!r}}}")
        pool = DownloadPool(
            fetcher=self.backend.fetcher,
            max_workers=self.download_workers,
            user_agent=user_agent,
            timeout=self.download_timeout,
            max_attempts=self.download_max_attempts,
        )
        try:
            if not settings.has(ExportOption.IGNORE_AVATAR):
                pool.add_task(account.portrait, output_base / "Portrait" / account.local_portrait)

            renderer = self.backend.renderer_factory(RenderContext(
                account=myself,
                contacts=contacts,
                index=ctx.index,
                shared_index=ctx.shared_index,
                options=settings.options,
                download_pool=pool,
                locale=locale,
                output_base=output_base,
                user_base=combine_path("Documents", account.hash),
            ))

            items = self._export_conversations(ctx, account, conversations, renderer, pool, output_base)

            html = ctx.templates.fill(
                "listframe",
                USERNAME=f" - {account.display_name}",
                TBODY="".join(items),
            )
            self._write_document(output_base / f"index.{settings.ext_name}", html)
        finally:
            if self._cancel_event.is_set():
                pool.cancel()
            else:
                pending = pool.running_count
                if pending > 0:
                    logger.info(locale.format("Waiting for images(%d) downloading.", pending))
            pool.finish_and_wait()
        return True

    def _export_conversations(
        self,
        ctx: RunContext,
        account: Account,
        conversations: List[Conversation],
        renderer: Any,
        pool: DownloadPool,
        output_base: Path,
    ) -> List[str]:
        """Export the selected conversations in order; returns account index entries."""
        settings = ctx.settings
        locale = ctx.locale
        selected = [c for c in conversations if settings.selects_conversation(account, c)]
        total = len(selected)
        # The account index shares the folder with the chat documents
        names = NameResolver(used={"index"})
        items = []

        for position, conversation in enumerate(selected, 1):
            if self._cancel_event.is_set():
                break
            try:
                if conversation.is_subscription:
                    logger.info(locale.format("Skip subscription: %s", conversation.display_name))
                    continue
                try:
                    names.assign(conversation)
                except NameResolutionError:
                    logger.warning(locale.format("Can't build directory name for chat: %s. Skip it.", conversation.display_name))
                    continue

                logger.info(locale.format("%d/%d: Handling the chat with %s", position, total, conversation.display_name))
                if not settings.has(ExportOption.IGNORE_AVATAR) and not conversation.is_portrait_empty():
                    pool.add_task(conversation.portrait, output_base / "Portrait" / conversation.local_portrait)

                try:
                    count = self._export_conversation(ctx, renderer, conversation, output_base)
                except Exception as e:
                    logger.exception(
                        f"Chat export failed: {{'chat': {conversation.user_name!r}, "
                        f"'error_category': {classify_error(e)!r}}}"
                    )
                    continue
                logger.info(locale.format("Succeeded handling %d messages.", count))

                if count > 0:
                    name = conversation.output_file_name
                    items.append(self._list_item(
                        ctx,
                        pic_path=f"Portrait/{conversation.local_portrait}",
                        link=f"{self._encode_url(ctx, name)}.{settings.ext_name}",
                        text=conversation.display_name,
                    ))
            finally:
                self._notify("on_progress", position, total)
        return items

    # ------------------------------------------------------------------
    # Conversation

    def _export_conversation(
        self,
        ctx: RunContext,
        renderer: Any,
        conversation: Conversation,
        output_base: Path,
    ) -> int:
        """Write one conversation document. Returns the renderer's message count."""
        if conversation.is_db_file_empty():
            return 0

        settings = ctx.settings
        assets = output_base / f"{conversation.output_file_name}_files"
        if not settings.has(ExportOption.IGNORE_AVATAR):
            self._prepare_portrait_dir(assets / "Portrait")
        if not settings.has(ExportOption.IGNORE_EMOJI):
            (assets / "Emoji").mkdir(parents=True, exist_ok=True)

        messages: List[str] = []
        templates = ctx.templates

        def on_batch(batch) -> bool:
            for unit in batch:
                messages.append("".join(templates.render(tv.name, tv) for tv in unit))
            return self._cancel_event.is_set()

        count = renderer.render(conversation, on_batch)
        if count != len(messages):
            logger.warning(
                f"Message count mismatch: {{'chat': {conversation.user_name!r}, "
                f"'reported': {count}, 'rendered': {len(messages)}}}"
            )

        if count > 0 and messages:
            page = paginate(messages, text_mode=settings.has(ExportOption.TEXT_MODE))
            html = templates.fill(
                "frame",
                DISPLAYNAME=conversation.display_name,
                BODY=page.body,
                JSONDATA=page.payload,
            )
            self._write_document(output_base / f"{conversation.output_file_name}.{settings.ext_name}", html)
        return count

    # ------------------------------------------------------------------
    # Helpers

    def _prepare_portrait_dir(self, portrait_dir: Path) -> None:
        portrait_dir.mkdir(parents=True, exist_ok=True)
        source = self.work_dir / "res" / DEFAULT_PORTRAIT
        try:
            shutil.copyfile(source, portrait_dir / DEFAULT_PORTRAIT)
        except OSError as e:
            logger.debug(f"Default avatar not copied: {{'source': {str(source)!r}, 'error': {str(e)!r}}}")

    def _encode_url(self, ctx: RunContext, value: str) -> str:
        if ctx.settings.has(ExportOption.IGNORE_HTML_ENC):
            return value
        return quote(value, safe="")

    def _list_item(self, ctx: RunContext, pic_path: str, link: str, text: str) -> str:
        if not ctx.settings.has(ExportOption.IGNORE_HTML_ENC):
            text = escape(text)
        return ctx.templates.fill("listitem", ITEMPICPATH=pic_path, ITEMLINK=link, ITEMTEXT=text)

    def _write_document(self, path: Path, content: str) -> None:
        path.write_text(content, encoding="utf-8")

    def _notify(self, event: str, *args: Any) -> None:
        try:
            getattr(self.notifier, event)(*args)
        except Exception:
            logger.exception(f"Notifier failed: {{'event': {event!r}}}")


def _release_on_exit(stack: ExitStack, resource: Any) -> None:
    close = getattr(resource, "close", None)
    if callable(close):
        stack.callback(close)
