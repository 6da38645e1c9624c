"""Configuration models for the exporter."""

from typing import Dict, List

from pydantic import BaseModel, ConfigDict, Field, field_validator

from wxbackup.common import LoggingConfig, auto_detect_io_workers, expand_path_variables

from .options import ExportOption

_FLAG_FIELDS = {
    "text_mode": ExportOption.TEXT_MODE,
    "descending": ExportOption.DESC,
    "icons_in_session": ExportOption.ICON_IN_SESSION,
    "ignore_avatar": ExportOption.IGNORE_AVATAR,
    "ignore_emoji": ExportOption.IGNORE_EMOJI,
    "ignore_html_enc": ExportOption.IGNORE_HTML_ENC,
}


class ExportConfig(BaseModel):
    """What to export and where."""

    model_config = ConfigDict(extra='forbid')

    work_dir: str = Field(default=".", description="Directory holding res/ (templates, locale, default avatar)")
    backup_dir: str = Field(default="", description="Root of the device backup")
    output_dir: str = Field(default="", description="Existing directory the export is written into")
    backend: str = Field(default="", description="'module:attr' factory returning the backup readers and renderer")
    ext_name: str = Field(default="html", min_length=1, description="Extension of generated documents")
    templates_name: str = Field(default="templates", min_length=1, description="Template set under res/")
    text_mode: bool = Field(default=False, description="Inline every message, no lazy-load payload")
    descending: bool = Field(default=False, description="Newest conversations first")
    icons_in_session: bool = Field(default=False, description="Keep emoji assets under each conversation")
    ignore_avatar: bool = Field(default=False, description="Skip avatar downloads and placeholders")
    ignore_emoji: bool = Field(default=False, description="Skip Emoji/ asset folders")
    ignore_html_enc: bool = Field(default=False, description="Insert links and labels without escaping")
    filter: Dict[str, List[str]] = Field(
        default_factory=dict,
        description="account id -> conversation ids to export (empty: everything)"
    )

    @field_validator('work_dir', 'backup_dir', 'output_dir', mode='before')
    @classmethod
    def expand_paths(cls, v: str) -> str:
        return expand_path_variables(v)

    @field_validator('ext_name', mode='before')
    @classmethod
    def strip_leading_dot(cls, v: str) -> str:
        if isinstance(v, str):
            return v.lstrip('.')
        return v

    def options(self) -> ExportOption:
        """The boolean switches as an ExportOption bitmask."""
        options = ExportOption.NONE
        for name, flag in _FLAG_FIELDS.items():
            if getattr(self, name):
                options |= flag
        return options


class DownloadConfig(BaseModel):
    """Media download pool settings."""

    model_config = ConfigDict(extra='forbid')

    workers: int = Field(
        default_factory=auto_detect_io_workers,
        ge=1,
        description="Concurrent downloads per account"
    )
    timeout: float = Field(default=30.0, gt=0, description="Per-request timeout in seconds")
    max_attempts: int = Field(default=2, ge=1, description="Attempts per file before giving up")


class WXBackupConfig(BaseModel):
    """Root configuration."""

    model_config = ConfigDict(extra='forbid')

    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    export: ExportConfig = Field(default_factory=ExportConfig)
    download: DownloadConfig = Field(default_factory=DownloadConfig)
