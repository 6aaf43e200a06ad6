"""
Transition Engine

One table-driven state machine for every workflow entity. The table maps
entity kind -> current status -> target status -> Edge, and the engine is
the only code path that changes an entity's status:

1. Validate the entity exists and the edge is in the table
2. Validate the metadata the edge requires
3. Commit status, assigned fields and exactly one history entry in a
   single store update
4. Run the edge's named side effect, if any, after the commit

Reversible toggles (invoice paid/unpaid, ticket resolve/reopen) compute
their target from a rule over the entity instead of a fixed prior state.
"""

import logging
import string
from dataclasses import dataclass
from datetime import date
from typing import Any, Callable, Dict, List, Optional, Tuple, Type

from pydantic import BaseModel

from crm.models.domain import (
    EntityKind,
    HistoryEntry,
    InvoiceStatus,
    LeadStatus,
    QuoteStatus,
    SubscriptionStatus,
    TicketStatus,
)
from crm.utils.clock import Clock, SystemClock
from crm.utils.exceptions import InvalidTransitionError, ValidationError
from crm.utils.store import EntityStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Edge:
    """
    A legal status change and what it records.

    An edge naming a ``rule`` is only legal when that toggle's rule yields
    its target for the entity as it stands.
    """
    action: str = "Status Change"
    requires: Tuple[str, ...] = ()
    assigns: Tuple[str, ...] = ()
    details: Optional[str] = None
    side_effect: Optional[str] = None
    rule: Optional[str] = None


@dataclass(frozen=True)
class Toggle:
    """A reversible action whose target status is computed by a rule."""
    sources: Tuple[str, ...]
    rule: Callable[[Any, date], str]


SideEffect = Callable[[BaseModel, Dict[str, Any], str], None]


STATUS_ENUMS: Dict[EntityKind, Type] = {
    EntityKind.LEAD: LeadStatus,
    EntityKind.QUOTE: QuoteStatus,
    EntityKind.INVOICE: InvoiceStatus,
    EntityKind.TICKET: TicketStatus,
    EntityKind.SUBSCRIPTION: SubscriptionStatus,
}


# ============================================================================
# Transition table
# ============================================================================

TRANSITIONS: Dict[EntityKind, Dict[str, Dict[str, Edge]]] = {
    EntityKind.LEAD: {
        LeadStatus.NEW: {
            LeadStatus.CONTACTED: Edge(),
        },
        LeadStatus.CONTACTED: {
            LeadStatus.SITE_SURVEY: Edge(),
        },
        LeadStatus.SITE_SURVEY: {
            LeadStatus.ENGINEER_REVIEW: Edge(
                requires=("assigned_engineer_id",),
                assigns=("assigned_engineer_id",),
            ),
        },
        LeadStatus.ENGINEER_REVIEW: {
            LeadStatus.QUOTE_SENT: Edge(
                action="Quote Approved",
                details="Design approved. Moved to Quote Sent status.",
            ),
            LeadStatus.SITE_SURVEY: Edge(
                action="Changes Requested",
                requires=("reason",),
                details="Design rejected. Returned for revision. Feedback: {reason}",
            ),
        },
        LeadStatus.QUOTE_SENT: {
            LeadStatus.CLOSED_WON: Edge(action="Deal Closed", side_effect="lead_won"),
            LeadStatus.CLOSED_LOST: Edge(action="Deal Lost"),
        },
    },
    EntityKind.QUOTE: {
        QuoteStatus.DRAFT: {
            QuoteStatus.SENT: Edge(action="Quote Sent"),
        },
        QuoteStatus.SENT: {
            QuoteStatus.ACCEPTED: Edge(action="Quote Accepted"),
            QuoteStatus.REJECTED: Edge(
                action="Changes Requested",
                requires=("reason",),
                side_effect="quote_rejected",
            ),
        },
        QuoteStatus.REJECTED: {
            QuoteStatus.DRAFT: Edge(action="Quote Revised"),
        },
    },
    EntityKind.INVOICE: {
        InvoiceStatus.DRAFT: {
            InvoiceStatus.SENT: Edge(action="Invoice Sent"),
        },
        InvoiceStatus.SENT: {
            InvoiceStatus.PAID: Edge(action="Marked Paid"),
            InvoiceStatus.OVERDUE: Edge(action="Marked Overdue"),
        },
        InvoiceStatus.OVERDUE: {
            InvoiceStatus.PAID: Edge(action="Marked Paid"),
        },
        InvoiceStatus.PAID: {
            InvoiceStatus.SENT: Edge(action="Marked Unpaid", rule="mark_unpaid"),
            InvoiceStatus.OVERDUE: Edge(action="Marked Unpaid", rule="mark_unpaid"),
        },
    },
    EntityKind.TICKET: {
        TicketStatus.OPEN: {
            TicketStatus.ASSIGNED: Edge(
                action="Technician Assigned",
                requires=("assigned_tech",),
                assigns=("assigned_tech",),
            ),
        },
        TicketStatus.ASSIGNED: {
            TicketStatus.IN_PROGRESS: Edge(action="Work Started"),
        },
        TicketStatus.IN_PROGRESS: {
            TicketStatus.RESOLVED: Edge(action="Resolved"),
        },
        TicketStatus.RESOLVED: {
            TicketStatus.IN_PROGRESS: Edge(action="Reopened"),
        },
    },
    EntityKind.SUBSCRIPTION: {
        SubscriptionStatus.ACTIVE: {
            SubscriptionStatus.PAST_DUE: Edge(
                action="Payment Failed",
                side_effect="subscription_payment_failed",
            ),
            SubscriptionStatus.CANCELLED: Edge(action="Cancelled"),
        },
        SubscriptionStatus.PAST_DUE: {
            SubscriptionStatus.ACTIVE: Edge(
                action="Payment Recovered",
                side_effect="subscription_payment_recovered",
            ),
            SubscriptionStatus.CANCELLED: Edge(action="Cancelled"),
        },
    },
}


def _unpaid_status(invoice, today: date) -> str:
    if invoice.due_date < today:
        return InvoiceStatus.OVERDUE
    return InvoiceStatus.SENT


TOGGLES: Dict[EntityKind, Dict[str, Toggle]] = {
    EntityKind.INVOICE: {
        "mark_paid": Toggle(
            sources=(InvoiceStatus.SENT, InvoiceStatus.OVERDUE),
            rule=lambda invoice, today: InvoiceStatus.PAID,
        ),
        "mark_unpaid": Toggle(sources=(InvoiceStatus.PAID,), rule=_unpaid_status),
    },
    EntityKind.TICKET: {
        "resolve": Toggle(
            sources=(TicketStatus.IN_PROGRESS,),
            rule=lambda ticket, today: TicketStatus.RESOLVED,
        ),
        "reopen": Toggle(
            sources=(TicketStatus.RESOLVED,),
            rule=lambda ticket, today: TicketStatus.IN_PROGRESS,
        ),
    },
}

METADATA_LABELS = {
    "assigned_engineer_id": "Assigned to Engineer",
    "assigned_tech": "Assigned to Technician",
    "reason": "Reason",
    "note": "Note",
}

STAFF_FIELDS = ("assigned_engineer_id", "assigned_tech")


def terminal_states(kind: EntityKind) -> List[str]:
    """Statuses with no outgoing edge"""
    enum_cls = STATUS_ENUMS[kind]
    table = TRANSITIONS[kind]
    return [status for status in enum_cls if not table.get(status)]


# ============================================================================
# Engine
# ============================================================================

class TransitionEngine:
    """Validates, applies and records status transitions"""

    def __init__(
        self,
        store: EntityStore,
        clock: Optional[Clock] = None,
        table: Optional[Dict[EntityKind, Dict[str, Dict[str, Edge]]]] = None,
    ):
        self.store = store
        self.clock = clock or SystemClock()
        self.table = table or TRANSITIONS
        self._side_effects: Dict[str, SideEffect] = {}

    def register_side_effect(self, name: str, handler: SideEffect):
        """Attach the handler run after commits of edges naming ``name``"""
        self._side_effects[name] = handler

    # ------------------------------------------------------------------
    # Queries over the table
    # ------------------------------------------------------------------

    def allowed_targets(self, kind: EntityKind, status: str, entity: Optional[BaseModel] = None) -> List[str]:
        """
        Statuses reachable in one step from ``status``.

        With an ``entity``, rule-governed edges are narrowed to the target
        their rule computes for it.
        """
        edges = self.table.get(kind, {}).get(status, {})
        if entity is None:
            return list(edges)
        today = self.clock.today()
        return [
            target for target, edge in edges.items()
            if edge.rule is None or self._rule_target(kind, edge.rule, entity, today) == target
        ]

    def can_transition(self, kind: EntityKind, current: str, target: str) -> bool:
        return target in self.table.get(kind, {}).get(current, {})

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def apply_transition(
        self,
        kind: EntityKind,
        entity_id: str,
        target_status: str,
        actor: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> BaseModel:
        """
        Move an entity to ``target_status``.

        Args:
            kind: Entity collection
            entity_id: Id of the entity to move
            target_status: Requested status (enum member or its value)
            actor: Acting user or role, recorded in history
            metadata: Edge inputs such as a rejection reason or assignee id

        Returns:
            The committed entity

        Raises:
            NotFoundError: If the entity does not exist
            InvalidTransitionError: If the edge is not in the table
            ValidationError: If required metadata is missing
        """
        kind = EntityKind(kind)
        metadata = dict(metadata or {})
        collection = self.store.collection(kind)
        entity = collection.get(entity_id)

        current = entity.status
        target = self._coerce_status(kind, entity_id, current, target_status)
        edge = self.table.get(kind, {}).get(current, {}).get(target)
        if edge is None:
            raise InvalidTransitionError(kind.value, entity_id, current.value, target.value)
        if edge.rule:
            expected = self._rule_target(kind, edge.rule, entity, self.clock.today())
            if expected != target:
                raise InvalidTransitionError(
                    kind.value, entity_id, current.value, target.value,
                    reason=f"{edge.rule} moves this {kind.value} to '{expected.value}'",
                )

        for key in edge.requires:
            value = metadata.get(key)
            if value is None or not str(value).strip():
                raise ValidationError(
                    f"{kind.value} transition to '{target.value}' requires '{key}'",
                    field=key,
                )

        entry = self.history_entry(
            entity,
            action=edge.action,
            actor=actor,
            details=self._describe(edge, target, metadata),
        )
        patch = {"status": target, "history": [*entity.history, entry]}
        for key in edge.assigns:
            patch[key] = metadata[key]

        committed = collection.update(entity_id, patch)
        logger.info(f"{kind.value} {entity_id}: {current.value} -> {target.value} by {actor}")

        if edge.side_effect:
            self._run_side_effect(edge.side_effect, committed, metadata, actor)
            committed = collection.get(entity_id)
        return committed

    def toggle(
        self,
        kind: EntityKind,
        entity_id: str,
        toggle_name: str,
        actor: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> BaseModel:
        """
        Apply a reversible toggle; the target comes from the toggle's rule.

        Raises:
            InvalidTransitionError: If the toggle does not apply in the current status
        """
        kind = EntityKind(kind)
        toggle = TOGGLES.get(kind, {}).get(toggle_name)
        if toggle is None:
            raise ValidationError(f"Unknown toggle '{toggle_name}' for {kind.value}")

        entity = self.store.collection(kind).get(entity_id)
        if entity.status not in toggle.sources:
            raise InvalidTransitionError(
                kind.value, entity_id, entity.status.value, toggle_name,
                reason="toggle not available in this status",
            )
        target = toggle.rule(entity, self.clock.today())
        return self.apply_transition(kind, entity_id, target, actor, metadata)

    def record(
        self,
        kind: EntityKind,
        entity_id: str,
        action: str,
        actor: str,
        details: str = "",
        patch: Optional[Dict[str, Any]] = None,
    ) -> BaseModel:
        """Append a history entry (with optional field changes) without a status change"""
        kind = EntityKind(kind)
        collection = self.store.collection(kind)
        entity = collection.get(entity_id)
        changes = dict(patch or {})
        if "status" in changes:
            raise ValidationError("Status changes must go through apply_transition", field="status")
        changes["history"] = [*entity.history, self.history_entry(entity, action, actor, details)]
        return collection.update(entity_id, changes)

    def mark_overdue_invoices(self, actor: str = "System") -> List[str]:
        """Move every Sent invoice past its due date to Overdue"""
        today = self.clock.today()
        moved = []
        for invoice in self.store.invoices.find(
            lambda i: i.status == InvoiceStatus.SENT and i.due_date < today
        ):
            self.apply_transition(
                EntityKind.INVOICE,
                invoice.id,
                InvoiceStatus.OVERDUE,
                actor,
                {"note": f"Due {invoice.due_date.isoformat()}"},
            )
            moved.append(invoice.id)
        if moved:
            logger.info(f"Marked {len(moved)} invoices overdue")
        return moved

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def history_entry(self, entity: BaseModel, action: str, actor: str, details: str = "") -> HistoryEntry:
        """Build a history entry stamped no earlier than the entity's last one"""
        stamp = self.clock.now()
        history = getattr(entity, "history", None) or []
        if history and stamp < history[-1].date:
            stamp = history[-1].date
        return HistoryEntry(date=stamp, action=action, actor=actor, details=details)

    def _rule_target(self, kind: EntityKind, toggle_name: str, entity: BaseModel, today: date):
        toggle = TOGGLES[kind][toggle_name]
        return STATUS_ENUMS[kind](toggle.rule(entity, today))

    def _coerce_status(self, kind: EntityKind, entity_id: str, current, target_status):
        enum_cls = STATUS_ENUMS.get(kind)
        if enum_cls is None:
            raise InvalidTransitionError(kind.value, entity_id, "n/a", str(target_status),
                                         reason="entity kind has no status workflow")
        try:
            return enum_cls(target_status)
        except ValueError:
            raise InvalidTransitionError(
                kind.value, entity_id, current.value, str(target_status),
                reason="unknown status",
            )

    def _describe(self, edge: Edge, target, metadata: Dict[str, Any]) -> str:
        values = {key: self._metadata_value(key, value) for key, value in metadata.items()}
        if edge.details:
            used = {name for _, name, _, _ in string.Formatter().parse(edge.details) if name}
            text = edge.details.format(**{**values, "target": target.value})
        else:
            used = set()
            text = f"Status updated to {target.value}"
        extras = [
            f"{METADATA_LABELS.get(key, key.replace('_', ' ').capitalize())}: {value}"
            for key, value in values.items()
            if key not in used
        ]
        if extras:
            text = ". ".join([text.rstrip(".")] + extras)
        return text

    def _metadata_value(self, key: str, value: Any) -> str:
        if key in STAFF_FIELDS and value in self.store.staff:
            member = self.store.staff.get(value)
            return f"{member.name} ({value})"
        return str(value)

    def _run_side_effect(self, name: str, entity: BaseModel, metadata: Dict[str, Any], actor: str):
        handler = self._side_effects.get(name)
        if handler is None:
            logger.debug(f"No handler registered for side effect '{name}'")
            return
        logger.debug(f"Running side effect '{name}' for {entity.id}")
        handler(entity, metadata, actor)
