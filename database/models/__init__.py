"""ORM models. Importing this package registers every table on Base.metadata."""

from database.models.identity import User, Organization, Membership, MembershipRole, OrganizationType
from database.models.jobs import Company, Job, JobStatus
from database.models.candidates import Candidate, CandidateSourcer, CandidateOutreach, SourcerType
from database.models.applications import Application, ApplicationStage
from database.models.network import Recruiter, RecruiterStatus, RoleAssignment, RecruiterReputation
from database.models.proposals import CandidateRoleAssignment, ProposalState
from database.models.placements import Placement, PlacementCollaborator, PlacementState, CollaboratorRole
from database.models.payouts import Payout, PayoutAuditLog, PayoutStatus
from database.models.billing import Plan, Subscription, SubscriptionStatus
from database.models.documents import Document, DocumentStatus
from database.models.events import DomainEventRecord

__all__ = [
    "User",
    "Organization",
    "Membership",
    "MembershipRole",
    "OrganizationType",
    "Company",
    "Job",
    "JobStatus",
    "Candidate",
    "CandidateSourcer",
    "CandidateOutreach",
    "SourcerType",
    "Application",
    "ApplicationStage",
    "Recruiter",
    "RecruiterStatus",
    "RoleAssignment",
    "RecruiterReputation",
    "CandidateRoleAssignment",
    "ProposalState",
    "Placement",
    "PlacementCollaborator",
    "PlacementState",
    "CollaboratorRole",
    "Payout",
    "PayoutAuditLog",
    "PayoutStatus",
    "Plan",
    "Subscription",
    "SubscriptionStatus",
    "Document",
    "DocumentStatus",
    "DomainEventRecord",
]
