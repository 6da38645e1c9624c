"""Export pipeline: turns a parsed messaging backup into static HTML."""

from .config import DownloadConfig, ExportConfig, WXBackupConfig
from .coordinator import Exporter, RunSettings, RunState
from .download_pool import DownloadPool, DownloadStatus, Fetcher, RequestsFetcher
from .errors import (
    BackupLoadError,
    DownloadError,
    ExporterError,
    NameResolutionError,
    OutputDirectoryError,
    RunInProgressError,
)
from .interfaces import (
    AccountContentLoader,
    BackupDiscovery,
    ExportBackend,
    ExportNotifier,
    MessageRenderer,
    RenderContext,
    default_path_filter,
)
from .locale import LocaleRegistry
from .models import Account, ClientInfo, Contact, ContactSet, Conversation, TemplateValues
from .naming import NameResolver
from .notifier import LoggingNotifier
from .options import ExportOption
from .pagination import PAGE_SIZE, paginate
from .templates import TemplateRegistry

__all__ = [
    'Exporter',
    'RunSettings',
    'RunState',
    'ExportOption',
    'ExportBackend',
    'BackupDiscovery',
    'AccountContentLoader',
    'MessageRenderer',
    'RenderContext',
    'ExportNotifier',
    'LoggingNotifier',
    'default_path_filter',
    'Account',
    'Contact',
    'ContactSet',
    'Conversation',
    'ClientInfo',
    'TemplateValues',
    'TemplateRegistry',
    'LocaleRegistry',
    'NameResolver',
    'DownloadPool',
    'DownloadStatus',
    'Fetcher',
    'RequestsFetcher',
    'PAGE_SIZE',
    'paginate',
    'ExportConfig',
    'DownloadConfig',
    'WXBackupConfig',
    'ExporterError',
    'OutputDirectoryError',
    'BackupLoadError',
    'NameResolutionError',
    'RunInProgressError',
    'DownloadError',
]
