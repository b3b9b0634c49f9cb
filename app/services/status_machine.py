"""Proposal status transitions.

Pure decision logic: no database access. Callers apply the returned status
through a conditional write guarded by the status they read.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from enum import Enum
from typing import Any

from app.core.exceptions import AuthorizationError, ConflictError, ValidationError
from app.core.permissions import REVIEW_ROLES, ActorRole
from app.schemas.proposals import ComplianceStatus, ProposalStatus, ReviewDecision
from app.services.compliance import default_checklist


class ProposalAction(str, Enum):
    SUBMIT = "submit"
    SAVE_EVENT_DETAILS = "save_event_details"
    APPROVE = "approve"
    DENY = "deny"
    REQUEST_REVISION = "request_revision"
    RESUBMIT = "resubmit"


_ACTION_ALIASES = {
    "approved": ProposalAction.APPROVE,
    "denied": ProposalAction.DENY,
    "reject": ProposalAction.DENY,
    "rejected": ProposalAction.DENY,
    "revise": ProposalAction.REQUEST_REVISION,
    "revision": ProposalAction.REQUEST_REVISION,
    "revision_requested": ProposalAction.REQUEST_REVISION,
}

REVIEW_ACTIONS = frozenset(
    {ProposalAction.APPROVE, ProposalAction.DENY, ProposalAction.REQUEST_REVISION}
)

_ANY_ROLE = frozenset(ActorRole)

_ACTION_ROLES: dict[ProposalAction, frozenset[ActorRole]] = {
    ProposalAction.SUBMIT: _ANY_ROLE,
    ProposalAction.RESUBMIT: _ANY_ROLE,
    ProposalAction.SAVE_EVENT_DETAILS: _ANY_ROLE,
    ProposalAction.APPROVE: REVIEW_ROLES,
    ProposalAction.DENY: REVIEW_ROLES,
    ProposalAction.REQUEST_REVISION: REVIEW_ROLES,
}

_TRANSITIONS: dict[tuple[ProposalStatus, ProposalAction], ProposalStatus] = {
    (ProposalStatus.DRAFT, ProposalAction.SUBMIT): ProposalStatus.PENDING,
    (ProposalStatus.REVISION_REQUESTED, ProposalAction.SUBMIT): ProposalStatus.PENDING,
    (ProposalStatus.REVISION_REQUESTED, ProposalAction.RESUBMIT): ProposalStatus.PENDING,
    (ProposalStatus.PENDING, ProposalAction.APPROVE): ProposalStatus.APPROVED,
    (ProposalStatus.PENDING, ProposalAction.DENY): ProposalStatus.DENIED,
    (ProposalStatus.PENDING, ProposalAction.REQUEST_REVISION): ProposalStatus.REVISION_REQUESTED,
}

# Target status requested through a plain update, mapped to the action that reaches it
ACTION_FOR_TARGET: dict[ProposalStatus, ProposalAction] = {
    ProposalStatus.PENDING: ProposalAction.SUBMIT,
    ProposalStatus.APPROVED: ProposalAction.APPROVE,
    ProposalStatus.DENIED: ProposalAction.DENY,
    ProposalStatus.REVISION_REQUESTED: ProposalAction.REQUEST_REVISION,
}

AUDIT_ACTIONS: dict[ProposalAction, str] = {
    ProposalAction.SUBMIT: "submitted",
    ProposalAction.RESUBMIT: "submitted",
    ProposalAction.SAVE_EVENT_DETAILS: "submitted",
    ProposalAction.APPROVE: "approved",
    ProposalAction.DENY: "denied",
    ProposalAction.REQUEST_REVISION: "revision_requested",
}

REVIEW_DECISIONS: dict[ProposalAction, ReviewDecision] = {
    ProposalAction.APPROVE: ReviewDecision.APPROVE,
    ProposalAction.DENY: ReviewDecision.REJECT,
    ProposalAction.REQUEST_REVISION: ReviewDecision.REVISE,
}


def parse_action(value: ProposalAction | str) -> ProposalAction:
    if isinstance(value, ProposalAction):
        return value
    cleaned = str(value or "").strip().lower().replace("-", "_").replace(" ", "_")
    if cleaned in _ACTION_ALIASES:
        return _ACTION_ALIASES[cleaned]
    try:
        return ProposalAction(cleaned)
    except ValueError:
        raise ValidationError(
            f"Unknown action: {value}",
            code="unknown_action",
            errors=[
                {
                    "loc": ["action"],
                    "msg": f"Unknown action: {value}",
                    "type": "value_error",
                    "allowed": [action.value for action in ProposalAction],
                }
            ],
        ) from None


def _parse_role(role: ActorRole | str) -> ActorRole:
    try:
        return ActorRole(role)
    except ValueError:
        raise AuthorizationError(f"Unknown role: {role}") from None


def transition(
    current: ProposalStatus | str,
    action: ProposalAction | str,
    role: ActorRole | str,
) -> ProposalStatus:
    """Return the status that ``action`` moves ``current`` to.

    Role is checked before the status, so a submitter trying to approve a
    decided proposal gets an authorization error rather than a conflict.
    """
    parsed_action = parse_action(action)
    actor_role = _parse_role(role)
    current_status = ProposalStatus(current)

    if actor_role not in _ACTION_ROLES[parsed_action]:
        raise AuthorizationError(
            f"Role {actor_role.value} may not {parsed_action.value} proposals",
            details={"action": parsed_action.value, "role": actor_role.value},
        )

    if parsed_action is ProposalAction.SAVE_EVENT_DETAILS:
        if current_status is ProposalStatus.DRAFT:
            return ProposalStatus.PENDING
        return current_status

    next_status = _TRANSITIONS.get((current_status, parsed_action))
    if next_status is None:
        raise ConflictError(
            f"Cannot {parsed_action.value} a proposal that is {current_status.value}",
            current_status=current_status.value,
        )
    return next_status


def side_effects(
    action: ProposalAction,
    *,
    now: datetime,
    actor_id: str | None,
    window_days: int = 30,
) -> dict[str, Any]:
    """Column values that accompany a status change."""
    if action in (ProposalAction.SUBMIT, ProposalAction.RESUBMIT, ProposalAction.SAVE_EVENT_DETAILS):
        return {"submitted_at": now}

    values: dict[str, Any] = {"reviewed_at": now, "reviewed_by": actor_id}
    if action is ProposalAction.APPROVE:
        values.update(
            approved_at=now,
            compliance_due_date=now + timedelta(days=window_days),
            compliance_documents=default_checklist(),
            compliance_status=ComplianceStatus.PENDING.value,
        )
    else:
        values["approved_at"] = None
    return values
