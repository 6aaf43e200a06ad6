"""
Services package for the CRM engine.
"""

from .transitions import TransitionEngine, TRANSITIONS, TOGGLES
from .dispatcher import WorkflowDispatcher
from .records import RecordService
from .ticket_analyzer import TicketAnalyzer, get_ticket_analyzer, reset_ticket_analyzer
from .deferred import DeferredAction
from .auth import SessionService, authenticate, register, can_access, landing_section
from .documents import CompanyProfile, render_invoice_document

__all__ = [
    "TransitionEngine",
    "TRANSITIONS",
    "TOGGLES",
    "WorkflowDispatcher",
    "RecordService",
    "TicketAnalyzer",
    "get_ticket_analyzer",
    "reset_ticket_analyzer",
    "DeferredAction",
    "SessionService",
    "authenticate",
    "register",
    "can_access",
    "landing_section",
    "CompanyProfile",
    "render_invoice_document",
]
