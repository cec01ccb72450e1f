"""
API Services Layer.

Database operations behind the API endpoints and worker tasks. Every function
takes the caller's AsyncSession and raises domain exceptions from
core.exceptions.
"""

from api.services.proposals import (
    create_proposal,
    get_proposal,
    list_proposals,
    accept_proposal,
    decline_proposal,
    mark_submitted,
    close_proposal,
    expire_overdue_proposals,
)

from api.services.placements import (
    create_placement,
    get_placement,
    list_placements,
    add_collaborator,
    remove_collaborator,
    get_fee_split,
    transition_placement,
    request_replacement,
    link_replacement,
    list_expiring_guarantees,
    suggest_collaborator_splits,
)

from api.services.payouts import (
    create_payout,
    get_payout,
    list_payouts,
    process_payout,
    hold_payout,
    release_payout,
    retry_payout,
    schedule_payout,
    process_due_payouts,
    get_audit_log,
)

from api.services.recruiters import (
    create_recruiter,
    get_recruiter,
    list_recruiters,
    update_recruiter_status,
    assign_recruiter_to_job,
    unassign_recruiter,
    list_recruiters_for_job,
    recalculate_reputation,
    get_reputation,
)

from api.services.jobs import (
    create_company,
    create_job,
    get_job,
    list_jobs,
    update_job_status,
    create_candidate,
    get_candidate,
    list_candidates,
)

from api.services.applications import (
    create_application,
    get_application,
    list_applications,
    change_stage,
)

from api.services.documents import (
    upload_document,
    get_document,
    list_documents,
    update_document_status,
    delete_document,
)

from api.services.sourcing import (
    source_candidate,
    get_candidate_sourcer,
    can_user_work_with_candidate,
    record_outreach,
    update_outreach_engagement,
    list_outreach,
)

from api.services.subscriptions import (
    list_plans,
    get_plan,
    create_plan,
    get_subscription_for_recruiter,
    is_subscription_active,
    create_subscription,
    cancel_subscription,
    handle_stripe_event,
)

from api.services.users import get_current_user_profile

__all__ = [
    # Proposals
    "create_proposal",
    "get_proposal",
    "list_proposals",
    "accept_proposal",
    "decline_proposal",
    "mark_submitted",
    "close_proposal",
    "expire_overdue_proposals",
    # Placements
    "create_placement",
    "get_placement",
    "list_placements",
    "add_collaborator",
    "remove_collaborator",
    "get_fee_split",
    "transition_placement",
    "request_replacement",
    "link_replacement",
    "list_expiring_guarantees",
    "suggest_collaborator_splits",
    # Payouts
    "create_payout",
    "get_payout",
    "list_payouts",
    "process_payout",
    "hold_payout",
    "release_payout",
    "retry_payout",
    "schedule_payout",
    "process_due_payouts",
    "get_audit_log",
    # Recruiters
    "create_recruiter",
    "get_recruiter",
    "list_recruiters",
    "update_recruiter_status",
    "assign_recruiter_to_job",
    "unassign_recruiter",
    "list_recruiters_for_job",
    "recalculate_reputation",
    "get_reputation",
    # Jobs
    "create_company",
    "create_job",
    "get_job",
    "list_jobs",
    "update_job_status",
    "create_candidate",
    "get_candidate",
    "list_candidates",
    # Applications
    "create_application",
    "get_application",
    "list_applications",
    "change_stage",
    # Documents
    "upload_document",
    "get_document",
    "list_documents",
    "update_document_status",
    "delete_document",
    # Sourcing
    "source_candidate",
    "get_candidate_sourcer",
    "can_user_work_with_candidate",
    "record_outreach",
    "update_outreach_engagement",
    "list_outreach",
    # Subscriptions
    "list_plans",
    "get_plan",
    "create_plan",
    "get_subscription_for_recruiter",
    "is_subscription_active",
    "create_subscription",
    "cancel_subscription",
    "handle_stripe_event",
    # Users
    "get_current_user_profile",
]
