from __future__ import annotations

from subtracker.platform.security.repository import BaseRepository


class SubscriptionRepository(BaseRepository):
    resource = "subscription.subscription"
