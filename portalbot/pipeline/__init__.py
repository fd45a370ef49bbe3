"""Worklist and ticket triage pipelines."""
from portalbot.pipeline.kyc import EvidenceReviewHandler, ProvisioningHandler
from portalbot.pipeline.outcomes import ItemResult, OutcomeLedger, PassResult, RunResult
from portalbot.pipeline.triage import TicketTriagePipeline, TriageReport
from portalbot.pipeline.worklist import (
    AWAITING_PROVISIONING,
    PENDING_EVIDENCE,
    WorklistProcessingPipeline,
)

__all__ = [
    "AWAITING_PROVISIONING",
    "EvidenceReviewHandler",
    "ItemResult",
    "OutcomeLedger",
    "PassResult",
    "PENDING_EVIDENCE",
    "ProvisioningHandler",
    "RunResult",
    "TicketTriagePipeline",
    "TriageReport",
    "WorklistProcessingPipeline",
]
