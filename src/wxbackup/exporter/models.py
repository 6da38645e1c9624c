"""Data model shared by the exporter and its collaborators."""

import hashlib
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Tuple

DEFAULT_PORTRAIT = "DefaultProfileHead@2x.png"


def md5_hex(value: str) -> str:
    """Lowercase hex md5 of ``value``; the backup keys per-user data by it."""
    return hashlib.md5(value.encode("utf-8")).hexdigest()


@dataclass
class Contact:
    """A participant known to an account (friend, group, or the account itself)."""

    user_name: str
    display_name: str = ""
    portrait: str = ""
    hash: str = ""
    output_file_name: str = ""

    def __post_init__(self) -> None:
        if not self.hash:
            self.hash = md5_hex(self.user_name)

    @property
    def local_portrait(self) -> str:
        """File name of the avatar inside a Portrait/ folder."""
        if not self.portrait:
            return DEFAULT_PORTRAIT
        return f"{self.hash}.jpg"

    def is_display_name_empty(self) -> bool:
        return not self.display_name.strip()

    def is_portrait_empty(self) -> bool:
        return not self.portrait

    def name_candidates(self) -> List[str]:
        """Output name candidates in priority order."""
        return [self.display_name, self.user_name, self.hash]


@dataclass
class Account(Contact):
    """A messaging identity found in the backup; the unit of top-level export."""
    pass


@dataclass
class Conversation(Contact):
    """One chat of an account; the unit of per-document export."""

    is_subscription: bool = False
    db_file: Optional[str] = None
    record_count: int = 0
    last_message_time: int = 0

    def is_db_file_empty(self) -> bool:
        return not self.db_file


class ContactSet:
    """Contacts of one account, keyed by identifier hash."""

    def __init__(self, contacts: Optional[List[Contact]] = None) -> None:
        self._contacts: Dict[str, Contact] = {}
        for contact in contacts or []:
            self.add(contact)

    def add(self, contact: Contact) -> Contact:
        self._contacts[contact.hash] = contact
        return contact

    def get(self, hash_: str) -> Optional[Contact]:
        return self._contacts.get(hash_)

    def ensure_account(self, account: Account) -> Contact:
        """Return the account's own entry, adding one built from ``account`` if absent."""
        existing = self.get(account.hash)
        if existing is not None:
            return existing
        return self.add(Contact(
            user_name=account.user_name,
            display_name=account.display_name,
            portrait=account.portrait,
            hash=account.hash,
        ))

    def __contains__(self, hash_: object) -> bool:
        return hash_ in self._contacts

    def __len__(self) -> int:
        return len(self._contacts)

    def __iter__(self) -> Iterator[Contact]:
        return iter(self._contacts.values())


class TemplateValues:
    """Field values for one template, kept in insertion order.

    Keys starting with ``%`` are placeholders (``%%NAME%%``) substituted into
    the named template; other keys carry renderer metadata and are ignored
    when flattening.
    """

    def __init__(self, name: str, values: Optional[List[Tuple[str, str]]] = None) -> None:
        self.name = name
        self._values: List[Tuple[str, str]] = []
        for key, value in values or []:
            self[key] = value

    def __setitem__(self, key: str, value: str) -> None:
        for idx, (existing, _) in enumerate(self._values):
            if existing == key:
                self._values[idx] = (key, value)
                return
        self._values.append((key, value))

    def __getitem__(self, key: str) -> str:
        for existing, value in self._values:
            if existing == key:
                return value
        raise KeyError(key)

    def __contains__(self, key: object) -> bool:
        return any(existing == key for existing, _ in self._values)

    def __iter__(self) -> Iterator[Tuple[str, str]]:
        return iter(list(self._values))

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self) -> str:
        return f"TemplateValues({self.name!r}, {self._values!r})"


@dataclass
class ClientInfo:
    """Client version metadata parsed from the backup."""

    short_version: str = ""
    ios_version: str = ""
    cell_data_version: int = 0
    extra: Dict[str, str] = field(default_factory=dict)

    def build_user_agent(self) -> str:
        """User-Agent the app itself would send when fetching media."""
        ios = (self.ios_version or "14_0").replace(".", "_")
        ua = (
            f"Mozilla/5.0 (iPhone; CPU iPhone OS {ios} like Mac OS X) "
            "AppleWebKit/605.1.15 (KHTML, like Gecko) Mobile/15E148"
        )
        if self.short_version:
            ua += f" MicroMessenger/{self.short_version} NetType/WIFI Language/en"
        return ua
