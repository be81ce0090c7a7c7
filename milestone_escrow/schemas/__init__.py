"""Schema package exports."""
from .admin import (
    DashboardStats,
    ForceRefundIn,
    ForceReleaseIn,
    MarkerRead,
    OwnershipAcceptIn,
    OwnershipProposeIn,
    OwnershipRead,
)
from .dispute import DisputeCreate, DisputeRead, DisputeReset, DisputeResolve
from .milestone import MilestoneApprove, MilestoneSubmit, SubmissionRead
from .notification import NotificationList, NotificationRead
from .project import (
    MilestoneIn,
    MilestoneView,
    ProgressRead,
    ProjectActivate,
    ProjectCreate,
    ProjectDetail,
    ProjectRead,
    RefundRequest,
)
from .proposal import ProposalCreate, ProposalRead
from .user import UserCreate, UserRead
