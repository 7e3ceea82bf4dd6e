# Models package init
# Importing every model registers it on Base.metadata.
from propodocs.models.proposal import PROPOSAL_STATUSES, Proposal, User  # noqa: F401
from propodocs.models.analytics import INTERACTION_TYPES, ProposalInteraction, ProposalView  # noqa: F401
from propodocs.models.notification import Notification, NotificationPreference  # noqa: F401
