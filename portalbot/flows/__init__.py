"""Operator-facing chat flows."""
from portalbot.flows.actions import AccountActions, ActionRequest, OperatorContexts, parse_action_request
from portalbot.flows.batch import TriageCommand, WorklistCommand, build_worklist_pipeline
from portalbot.flows.complaints import ComplaintClient, ComplaintFlows
from portalbot.flows.plan_change import PlanChangeFlow
from portalbot.flows.router import CommandRouter, RouteOutcome
from portalbot.flows.sla import SlaClient, SlaTicketFlow

__all__ = [
    "AccountActions",
    "ActionRequest",
    "CommandRouter",
    "ComplaintClient",
    "ComplaintFlows",
    "OperatorContexts",
    "PlanChangeFlow",
    "RouteOutcome",
    "SlaClient",
    "SlaTicketFlow",
    "TriageCommand",
    "WorklistCommand",
    "build_worklist_pipeline",
    "parse_action_request",
]
