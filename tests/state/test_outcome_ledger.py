"""Tests for the outcome model, repository and ledger."""
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
import pytest_asyncio

from portalbot.pipeline.outcomes import ItemResult, OutcomeLedger
from portalbot.state.database import DatabaseError, DatabaseManager
from portalbot.state.models import ItemOutcome, OutcomeRecord
from portalbot.state.repositories import OutcomeRepository


@pytest_asyncio.fixture
async def db(tmp_path: Path) -> DatabaseManager:
    """Create and initialize a temp database."""
    manager = DatabaseManager(tmp_path / "test_outcomes.db")
    await manager.initialize()
    return manager


@pytest.fixture
def repo(db: DatabaseManager) -> OutcomeRepository:
    return OutcomeRepository(db)


def _record(item_id: str = "501", run_id: str = "run-1", pass_no: int = 1, **kwargs) -> OutcomeRecord:
    """Helper to build an OutcomeRecord with defaults."""
    defaults = dict(
        run_id=run_id,
        pipeline="worklist",
        pass_no=pass_no,
        item_id=item_id,
        outcome=ItemOutcome.PROGRESSED,
        recorded_at=datetime.now(timezone.utc),
    )
    defaults.update(kwargs)
    return OutcomeRecord(**defaults)


class TestOutcomeModel:
    """Tests for the OutcomeRecord frozen dataclass."""

    def test_create_valid(self) -> None:
        r = _record()
        assert r.reason is None
        assert r.outcome is ItemOutcome.PROGRESSED

    def test_empty_run_id_raises(self) -> None:
        with pytest.raises(ValueError, match="run_id"):
            _record(run_id="")

    def test_empty_item_id_raises(self) -> None:
        with pytest.raises(ValueError, match="item_id"):
            _record(item_id="")

    def test_pass_no_must_be_positive(self) -> None:
        with pytest.raises(ValueError, match="pass_no"):
            _record(pass_no=0)

    def test_frozen(self) -> None:
        r = _record()
        with pytest.raises(AttributeError):
            r.item_id = "x"  # type: ignore[misc]


class TestOutcomeRepository:
    @pytest.mark.asyncio
    async def test_record_and_list(self, repo: OutcomeRepository) -> None:
        assert await repo.record(_record(reason="auto-approved"))
        rows = await repo.list_recent()
        assert len(rows) == 1
        assert rows[0].item_id == "501"
        assert rows[0].reason == "auto-approved"
        assert rows[0].outcome is ItemOutcome.PROGRESSED

    @pytest.mark.asyncio
    async def test_one_outcome_per_item_per_pass(self, repo: OutcomeRepository) -> None:
        assert await repo.record(_record())
        assert not await repo.record(_record(outcome=ItemOutcome.FAILED))
        assert await repo.record(_record(pass_no=2))
        assert len(await repo.list_recent()) == 2

    @pytest.mark.asyncio
    async def test_newest_first(self, repo: OutcomeRepository) -> None:
        base = datetime(2026, 1, 1, tzinfo=timezone.utc)
        for i in range(3):
            await repo.record(_record(item_id=f"i{i}", recorded_at=base + timedelta(minutes=i)))
        rows = await repo.list_recent(limit=2)
        assert [r.item_id for r in rows] == ["i2", "i1"]

    @pytest.mark.asyncio
    async def test_filter_by_pipeline(self, repo: OutcomeRepository) -> None:
        await repo.record(_record(item_id="501"))
        await repo.record(_record(item_id="9001", pipeline="triage", outcome=ItemOutcome.CLOSED))
        rows = await repo.list_recent(pipeline="triage")
        assert [r.item_id for r in rows] == ["9001"]

    @pytest.mark.asyncio
    async def test_invalid_limit(self, repo: OutcomeRepository) -> None:
        with pytest.raises(ValueError, match="limit"):
            await repo.list_recent(limit=0)

    @pytest.mark.asyncio
    async def test_counts_for_run(self, repo: OutcomeRepository) -> None:
        await repo.record(_record(item_id="a"))
        await repo.record(_record(item_id="b", outcome=ItemOutcome.SKIPPED))
        await repo.record(_record(item_id="c", outcome=ItemOutcome.SKIPPED))
        await repo.record(_record(item_id="d", run_id="other"))
        counts = await repo.counts_for_run("run-1")
        assert counts == {"closed": 0, "progressed": 1, "skipped": 2, "failed": 0, "total": 3}


class TestDatabaseManager:
    @pytest.mark.asyncio
    async def test_initialize_creates_parent(self, tmp_path: Path) -> None:
        manager = DatabaseManager(tmp_path / "nested" / "dir" / "bot.db")
        await manager.initialize()
        assert manager.is_initialized
        assert manager.db_path.exists()
        await manager.close()
        assert not manager.is_initialized

    @pytest.mark.asyncio
    async def test_missing_directory_raises(self, tmp_path: Path) -> None:
        manager = DatabaseManager(tmp_path / "absent" / "bot.db")
        with pytest.raises(DatabaseError, match="missing"):
            async with manager.connection():
                pass


class TestOutcomeLedger:
    @pytest.mark.asyncio
    async def test_disabled_ledger_is_a_no_op(self) -> None:
        ledger = OutcomeLedger()
        assert not ledger.enabled
        await ledger.record("run-1", "worklist", 1, "501", ItemResult.progressed())

    @pytest.mark.asyncio
    async def test_records_through_repository(self, repo: OutcomeRepository) -> None:
        ledger = OutcomeLedger(repo)
        await ledger.record("run-1", "triage", 1, "9001", ItemResult.closed("Connection restored"))
        rows = await repo.list_recent()
        assert rows[0].outcome is ItemOutcome.CLOSED
        assert rows[0].reason == "Connection restored"

    @pytest.mark.asyncio
    async def test_storage_failure_is_logged_not_raised(self, tmp_path: Path, caplog) -> None:
        ledger = OutcomeLedger(OutcomeRepository(DatabaseManager(tmp_path / "gone" / "bot.db")))
        await ledger.record("run-1", "worklist", 1, "501", ItemResult.failed("boom"))
        assert "Failed to record outcome for 501" in caplog.text
