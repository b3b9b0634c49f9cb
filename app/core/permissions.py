from dataclasses import dataclass
from enum import Enum
from typing import Iterable


class ActorRole(str, Enum):
    SUBMITTER = "submitter"
    REVIEWER = "reviewer"
    ADMIN = "admin"

    @classmethod
    def _missing_(cls, value):  # type: ignore[override]
        if not isinstance(value, str):
            return None
        cleaned = value.strip().lower().replace("-", "_").replace(" ", "_")
        aliases = {
            "student": cls.SUBMITTER,
            "partner": cls.SUBMITTER,
            "organization": cls.SUBMITTER,
            "head_admin": cls.ADMIN,
            "administrator": cls.ADMIN,
        }
        if cleaned in aliases:
            return aliases[cleaned]
        return cls._value2member_map_.get(cleaned)


@dataclass(slots=True)
class Actor:
    """Authenticated caller as seen by the services."""

    id: str
    role: ActorRole


class PermissionCode(str, Enum):
    PROPOSAL_CREATE = "proposal.create"
    PROPOSAL_EDIT = "proposal.edit"
    PROPOSAL_SUBMIT = "proposal.submit"
    PROPOSAL_REVIEW = "proposal.review"
    PROPOSAL_COMMENT = "proposal.comment"
    PROPOSAL_DELETE = "proposal.delete"
    PROPOSAL_VIEW_ALL = "proposal.view_all"
    PROPOSAL_DEBUG = "proposal.debug"

    FILE_UPLOAD = "file.upload"
    FILE_DOWNLOAD = "file.download"
    FILE_DELETE = "file.delete"

    REPORT_SUBMIT = "report.submit"
    COMPLIANCE_VIEW = "compliance.view"
    COMPLIANCE_MANAGE = "compliance.manage"
    COMPLIANCE_SWEEP = "compliance.sweep"

    NOTIFICATION_DISPATCH = "notification.dispatch"
    AUDIT_LOG_VIEW = "audit_log.view"


_SUBMITTER_PERMISSIONS = {
    PermissionCode.PROPOSAL_CREATE,
    PermissionCode.PROPOSAL_EDIT,
    PermissionCode.PROPOSAL_SUBMIT,
    PermissionCode.FILE_UPLOAD,
    PermissionCode.FILE_DOWNLOAD,
    PermissionCode.FILE_DELETE,
    PermissionCode.REPORT_SUBMIT,
    PermissionCode.AUDIT_LOG_VIEW,
}

_REVIEWER_PERMISSIONS = _SUBMITTER_PERMISSIONS | {
    PermissionCode.PROPOSAL_REVIEW,
    PermissionCode.PROPOSAL_COMMENT,
    PermissionCode.PROPOSAL_VIEW_ALL,
    PermissionCode.COMPLIANCE_VIEW,
    PermissionCode.COMPLIANCE_MANAGE,
}

ROLE_PERMISSIONS: dict[ActorRole, frozenset[PermissionCode]] = {
    ActorRole.SUBMITTER: frozenset(_SUBMITTER_PERMISSIONS),
    ActorRole.REVIEWER: frozenset(_REVIEWER_PERMISSIONS),
    ActorRole.ADMIN: frozenset(PermissionCode),
}

REVIEW_ROLES = frozenset({ActorRole.REVIEWER, ActorRole.ADMIN})


def permissions_for(role: ActorRole | str) -> frozenset[PermissionCode]:
    return ROLE_PERMISSIONS.get(ActorRole(role), frozenset())


def has_permission(role: ActorRole | str, code: PermissionCode | str) -> bool:
    return PermissionCode(code) in permissions_for(role)


def can_review(role: ActorRole | str) -> bool:
    return ActorRole(role) in REVIEW_ROLES


def role_values(roles: Iterable[ActorRole]) -> list[str]:
    return sorted(role.value for role in roles)
