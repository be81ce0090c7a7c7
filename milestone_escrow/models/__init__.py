"""ORM models package."""
from .api_key import ApiKey, ApiScope
from .audit import AuditLog
from .base import Base
from .dispute import Dispute, DisputeStatus
from .notification import Notification, NotificationType
from .project import (
    MAX_MILESTONES,
    Milestone,
    MilestoneStatus,
    Project,
    ProjectStatus,
    TokenType,
)
from .proposal import Proposal, ProposalStatus
from .reconciliation import MarkerStatus, ReconciliationMarker
from .scheduler_lock import SchedulerLock
from .submission import MilestoneSubmission, SubmissionStatus
from .user import User, UserRole

__all__ = [
    "ApiKey",
    "ApiScope",
    "AuditLog",
    "Base",
    "Dispute",
    "DisputeStatus",
    "MAX_MILESTONES",
    "MarkerStatus",
    "Milestone",
    "MilestoneStatus",
    "MilestoneSubmission",
    "Notification",
    "NotificationType",
    "Project",
    "ProjectStatus",
    "Proposal",
    "ProposalStatus",
    "ReconciliationMarker",
    "SchedulerLock",
    "SubmissionStatus",
    "TokenType",
    "User",
    "UserRole",
]
