"""Tests for the export data model and option flags."""

from wxbackup.exporter.interfaces import default_path_filter
from wxbackup.exporter.models import (
    DEFAULT_PORTRAIT,
    Account,
    ClientInfo,
    Contact,
    ContactSet,
    Conversation,
    TemplateValues,
    md5_hex,
)
from wxbackup.exporter.options import ExportOption, set_flag


class TestContact:
    """Tests for Contact and its subclasses."""

    def test_hash_defaults_to_md5_of_user_name(self):
        contact = Contact(user_name="wxid_abc")
        assert contact.hash == md5_hex("wxid_abc")
        assert len(contact.hash) == 32

    def test_explicit_hash_is_kept(self):
        assert Contact(user_name="x", hash="feed").hash == "feed"

    def test_local_portrait(self):
        """Test the placeholder is used without a portrait URL."""
        assert Contact(user_name="x").local_portrait == DEFAULT_PORTRAIT
        contact = Contact(user_name="x", portrait="http://img/x")
        assert contact.local_portrait == f"{contact.hash}.jpg"

    def test_name_candidates_order(self):
        contact = Account(user_name="wxid_a", display_name="Alice")
        assert contact.name_candidates() == ["Alice", "wxid_a", contact.hash]

    def test_blank_display_name_is_empty(self):
        assert Contact(user_name="x", display_name="   ").is_display_name_empty()

    def test_conversation_db_file(self):
        assert Conversation(user_name="c").is_db_file_empty()
        assert not Conversation(user_name="c", db_file="message_2.sqlite").is_db_file_empty()


class TestContactSet:
    """Tests for ContactSet."""

    def test_lookup_by_hash(self):
        bob = Contact(user_name="wxid_bob", display_name="Bob")
        contacts = ContactSet([bob])
        assert contacts.get(bob.hash) is bob
        assert bob.hash in contacts
        assert len(contacts) == 1

    def test_ensure_account_adds_missing_self(self):
        """Test the account is added to its own contacts when absent."""
        account = Account(user_name="wxid_me", display_name="Me", portrait="http://img/me")
        contacts = ContactSet()
        myself = contacts.ensure_account(account)
        assert myself.display_name == "Me"
        assert myself.portrait == "http://img/me"
        assert account.hash in contacts

    def test_ensure_account_keeps_existing(self):
        account = Account(user_name="wxid_me", display_name="Me")
        existing = Contact(user_name="wxid_me", display_name="Me (contact)")
        contacts = ContactSet([existing])
        assert contacts.ensure_account(account) is existing
        assert len(contacts) == 1


class TestTemplateValues:
    """Tests for TemplateValues."""

    def test_keeps_insertion_order(self):
        values = TemplateValues("msg")
        values["%%B%%"] = "2"
        values["%%A%%"] = "1"
        assert list(values) == [("%%B%%", "2"), ("%%A%%", "1")]

    def test_overwrite_keeps_position(self):
        values = TemplateValues("msg", [("%%A%%", "1"), ("%%B%%", "2")])
        values["%%A%%"] = "3"
        assert list(values) == [("%%A%%", "3"), ("%%B%%", "2")]
        assert values["%%A%%"] == "3"
        assert len(values) == 2

    def test_contains(self):
        values = TemplateValues("msg", [("%%A%%", "1")])
        assert "%%A%%" in values
        assert "%%B%%" not in values


class TestClientInfo:
    """Tests for ClientInfo."""

    def test_user_agent_includes_versions(self):
        ua = ClientInfo(short_version="8.0.30", ios_version="16.1").build_user_agent()
        assert "iPhone OS 16_1" in ua
        assert "MicroMessenger/8.0.30" in ua

    def test_user_agent_without_version(self):
        assert "MicroMessenger" not in ClientInfo().build_user_agent()


class TestExportOption:
    """Tests for the option bitmask."""

    def test_flags_are_independent(self):
        options = set_flag(ExportOption.NONE, ExportOption.TEXT_MODE, True)
        options = set_flag(options, ExportOption.IGNORE_EMOJI, True)
        assert options & ExportOption.TEXT_MODE
        assert options & ExportOption.IGNORE_EMOJI
        assert not options & ExportOption.DESC

    def test_clear_flag(self):
        options = ExportOption.TEXT_MODE | ExportOption.DESC
        assert set_flag(options, ExportOption.DESC, False) == ExportOption.TEXT_MODE


class TestDefaultPathFilter:
    """Tests for the preview path filter."""

    def test_skips_media_subtrees(self):
        assert not default_path_filter("Documents/abc/Img/x/1.pic")
        assert not default_path_filter("Documents/abc/Audio/x/1.aud")
        assert not default_path_filter("Documents/abc/OpenData/x")
        assert not default_path_filter("Documents/abc/Video/x/1.mp4")

    def test_keeps_databases(self):
        assert default_path_filter("Documents/abc/DB/MM.sqlite")
        assert default_path_filter("Documents/abc/Img")

    def test_windows_separators(self):
        assert not default_path_filter("Documents\\abc\\Video\\x\\1.mp4")
