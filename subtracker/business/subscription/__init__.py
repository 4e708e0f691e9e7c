from subtracker.business.subscription.api import router
from subtracker.business.subscription.models import Subscription
from subtracker.business.subscription.renewal import (
    RenewalFields,
    UpcomingRenewal,
    derive_renewal_fields,
    next_renewal_date,
    period_days,
    project_upcoming,
)
from subtracker.business.subscription.schemas import (
    SubscriptionCreate,
    SubscriptionDeleteResult,
    SubscriptionRead,
    SubscriptionUpdate,
    UpcomingRenewalRead,
)
from subtracker.business.subscription.service import SubscriptionService, subscription_service

__all__ = [
    "router",
    "Subscription",
    "RenewalFields",
    "UpcomingRenewal",
    "derive_renewal_fields",
    "next_renewal_date",
    "period_days",
    "project_upcoming",
    "SubscriptionCreate",
    "SubscriptionDeleteResult",
    "SubscriptionRead",
    "SubscriptionUpdate",
    "UpcomingRenewalRead",
    "SubscriptionService",
    "subscription_service",
]
