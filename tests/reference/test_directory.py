"""Tests for spreadsheet reference data."""
from pathlib import Path

import pytest
from openpyxl import Workbook

from portalbot.config import ReferenceConfig
from portalbot.errors import ReferenceDataError
from portalbot.reference.directory import (
    Partner,
    ReferenceData,
    load_caf_partner_codes,
    load_partner_mappings,
    load_user_directory,
    read_rows,
)


def write_sheet(path: Path, header: list[str], rows: list[list]) -> Path:
    workbook = Workbook()
    sheet = workbook.active
    sheet.append(header)
    for row in rows:
        sheet.append(row)
    workbook.save(path)
    return path


@pytest.fixture
def users_file(tmp_path: Path) -> Path:
    return write_sheet(tmp_path / "users.xlsx", ["Username", "Name", "MobileNo", "SubscriberId", "Email"], [
        ["JH.RAN.Asha", "ASHA DEVI", 9000000001, 10001, "asha@example.com"],
        [None, "Nobody", None, None, None],
    ])


@pytest.fixture
def partners_file(tmp_path: Path) -> Path:
    return write_sheet(tmp_path / "partners.xlsx", ["JH Code", "Partner ID", "Partner Name"], [
        ["JH.RAN", "P-7", "Ranchi Net"],
        ["JH.DHN", "P-8", None],
        [None, "P-9", "Orphan"],
    ])


@pytest.fixture
def caf_file(tmp_path: Path) -> Path:
    return write_sheet(tmp_path / "caf.xlsx", ["Associated Partner", "JH Code"], [
        ["Ranchi Net ", "jh.ran"],
    ])


class TestLoaders:
    def test_users_keyed_by_username_and_id(self, users_file: Path) -> None:
        users = load_user_directory(users_file)
        assert users["jh.ran.asha"] is users["10001"]
        assert users["jh.ran.asha"].mobile_no == "9000000001"
        assert len(users) == 2

    def test_partner_rows_need_code_and_id(self, partners_file: Path) -> None:
        partners = load_partner_mappings(partners_file)
        assert partners == {"JH.RAN": Partner("P-7", "Ranchi Net"), "JH.DHN": Partner("P-8", "Unknown")}

    def test_caf_codes(self, caf_file: Path) -> None:
        assert dict(load_caf_partner_codes(caf_file)) == {"ranchi net": "jh.ran"}

    def test_unreadable_file(self, tmp_path: Path) -> None:
        bad = tmp_path / "bad.xlsx"
        bad.write_text("not a workbook")
        with pytest.raises(ReferenceDataError):
            list(read_rows(bad))


class TestReferenceData:
    def test_load_all(self, users_file: Path, partners_file: Path, caf_file: Path) -> None:
        data = ReferenceData.load(ReferenceConfig(users_file, partners_file, caf_file))
        assert data.find_user(" JH.RAN.ASHA ").name == "asha devi"
        assert data.partner_for_subscriber("jh.ran.asha").partner_id == "P-7"
        assert data.code_for_partner("RANCHI NET") == "jh.ran"

    def test_missing_sheet_loads_empty(self, tmp_path: Path, users_file: Path) -> None:
        data = ReferenceData.load(ReferenceConfig(users_file, tmp_path / "nope.xlsx", tmp_path / "nope2.xlsx"))
        assert data.find_user("10001") is not None
        assert data.partners == {}
        assert data.code_for_partner("ranchi net") is None

    def test_partner_needs_two_segments(self) -> None:
        data = ReferenceData(partners={"JH.RAN": Partner("P-7")})
        assert data.partner_for_subscriber("jh") is None
        assert data.partner_for_subscriber("") is None

    def test_snapshot_is_read_only(self, users_file: Path) -> None:
        users = load_user_directory(users_file)
        with pytest.raises(TypeError):
            users["x"] = None  # type: ignore[index]
