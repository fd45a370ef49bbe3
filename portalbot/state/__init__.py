"""Outcome ledger."""
from portalbot.state.database import DatabaseError, DatabaseManager
from portalbot.state.models import ItemOutcome, OutcomeRecord
from portalbot.state.repositories import OutcomeRepository

__all__ = ["DatabaseError", "DatabaseManager", "ItemOutcome", "OutcomeRecord", "OutcomeRepository"]
