"""Read-only reference data loaded from spreadsheets."""
import logging
import zipfile
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Iterator, Mapping, Optional

from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException

from portalbot.config import ReferenceConfig
from portalbot.errors import ReferenceDataError
from portalbot.portal.models import UserRecord

logger = logging.getLogger(__name__)

_EMPTY: Mapping[Any, Any] = MappingProxyType({})


def normalize(value: Any) -> str:
    return str(value).strip().lower() if value is not None else ""


@dataclass(frozen=True)
class Partner:
    partner_id: str
    partner_name: str = "Unknown"


def read_rows(path: Path) -> Iterator[dict[str, Any]]:
    """Yield the first sheet's rows as dicts keyed by the header row.

    Raises:
        ReferenceDataError: The workbook cannot be opened.
    """
    try:
        workbook = load_workbook(path, read_only=True, data_only=True)
    except (OSError, ValueError, KeyError, InvalidFileException, zipfile.BadZipFile) as e:
        raise ReferenceDataError(f"Cannot read {path}: {e}") from e
    try:
        rows = workbook.worksheets[0].iter_rows(values_only=True)
        header = next(rows, None)
        if not header:
            return
        names = [str(h).strip() if h is not None else "" for h in header]
        for row in rows:
            yield {name: value for name, value in zip(names, row) if name}
    finally:
        workbook.close()


def load_user_directory(path: Path) -> Mapping[str, UserRecord]:
    """Users keyed by normalized username and by subscriber id."""
    users: dict[str, UserRecord] = {}
    for row in read_rows(path):
        record = UserRecord(
            username=normalize(row.get("Username")),
            name=normalize(row.get("Name")),
            mobile_no=normalize(row.get("MobileNo")),
            subscriber_id=normalize(row.get("SubscriberId")),
            email=normalize(row.get("Email")),
        )
        if record.username:
            users[record.username] = record
        if record.subscriber_id:
            users[record.subscriber_id] = record
    return MappingProxyType(users)


def load_partner_mappings(path: Path) -> Mapping[str, Partner]:
    """Partners keyed by hierarchical code (e.g. ``JH.RAN``)."""
    partners: dict[str, Partner] = {}
    for row in read_rows(path):
        code = str(row.get("JH Code") or "").strip()
        partner_id = str(row.get("Partner ID") or "").strip()
        if code and partner_id:
            partners[code] = Partner(partner_id, str(row.get("Partner Name") or "").strip() or "Unknown")
    return MappingProxyType(partners)


def load_caf_partner_codes(path: Path) -> Mapping[str, str]:
    """Hierarchical code keyed by normalized associated-partner name."""
    codes: dict[str, str] = {}
    for row in read_rows(path):
        partner = normalize(row.get("Associated Partner"))
        code = row.get("JH Code")
        if partner and code:
            codes[partner] = str(code).strip()
    return MappingProxyType(codes)


@dataclass(frozen=True)
class ReferenceData:
    """Immutable snapshot of the three reference sheets."""

    users: Mapping[str, UserRecord] = field(default_factory=lambda: _EMPTY)
    partners: Mapping[str, Partner] = field(default_factory=lambda: _EMPTY)
    caf_codes: Mapping[str, str] = field(default_factory=lambda: _EMPTY)

    def find_user(self, code: str) -> Optional[UserRecord]:
        return self.users.get(normalize(code))

    def partner_for_subscriber(self, subscriber_code: str) -> Optional[Partner]:
        """Partner owning a code such as ``jh.ran.user``; matched on the first two segments."""
        parts = (subscriber_code or "").split(".")
        if len(parts) < 2:
            return None
        prefix = ".".join(parts[:2])
        return self.partners.get(prefix) or self.partners.get(prefix.upper())

    def code_for_partner(self, partner_name: str) -> Optional[str]:
        return self.caf_codes.get(normalize(partner_name))

    @classmethod
    def load(cls, config: ReferenceConfig) -> "ReferenceData":
        """Load every sheet; an unreadable sheet yields an empty mapping."""
        return cls(
            users=_load_or_empty(load_user_directory, config.users_file),
            partners=_load_or_empty(load_partner_mappings, config.partners_file),
            caf_codes=_load_or_empty(load_caf_partner_codes, config.caf_partners_file),
        )


def _load_or_empty(loader, path: Path) -> Mapping[Any, Any]:
    try:
        data = loader(path)
    except ReferenceDataError as e:
        logger.error("Error loading reference data: %s", e)
        return _EMPTY
    logger.info("Loaded %d reference entries from %s", len(data), path)
    return data
