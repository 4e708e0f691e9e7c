from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any

from fastapi import HTTPException, status
from sqlalchemy import Select, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from subtracker import audit, events
from subtracker.business.subscription.errors import RenewalPolicyError
from subtracker.business.subscription.models import Subscription
from subtracker.business.subscription.renewal import (
    STATUS_ACTIVE,
    STATUS_CANCELLED,
    STATUS_EXPIRED,
    RenewalFields,
    derive_renewal_fields,
    project_upcoming,
)
from subtracker.business.subscription.repository import SubscriptionRepository
from subtracker.business.subscription.schemas import (
    SubscriptionCreate,
    SubscriptionDeleteResult,
    SubscriptionRead,
    SubscriptionUpdate,
    UpcomingRenewalRead,
    UpcomingScope,
)
from subtracker.core.config import get_settings
from subtracker.metrics import (
    observe_expired_on_write,
    observe_renewal_derivation,
    observe_subscription_operation,
    observe_upcoming_renewals,
)
from subtracker.otel import subscription_span
from subtracker.platform.security.context import AuthContext
from subtracker.platform.security.errors import AuthorizationError


logger = logging.getLogger("subtracker.subscription")

VALID_CANCEL_SOURCES = {STATUS_ACTIVE, STATUS_EXPIRED}
RENEWAL_INPUT_FIELDS = ("start_date", "frequency", "renewal_date")
AUDITED_FIELDS = ("name", "status", "frequency", "start_date", "renewal_date")


def utc_today() -> date:
    return datetime.now(timezone.utc).date()


@dataclass(slots=True)
class SubscriptionService:
    subscription_repository: SubscriptionRepository = SubscriptionRepository()
    clock: Callable[[], date] = utc_today

    def create_subscription(self, session: Session, ctx: AuthContext, payload: SubscriptionCreate) -> SubscriptionRead:
        today = self.clock()
        self._assert_start_not_in_future(payload.start_date, today)
        fields = self._derive(payload.start_date, payload.frequency, payload.renewal_date, today)

        data = payload.model_dump(mode="python")
        data.update(
            {
                "user_id": ctx.user_id,
                "price": self._q(payload.price),
                "renewal_date": fields.renewal_date,
                "status": self._resolve_status(payload.status, fields),
            }
        )

        subscription = Subscription(**data)
        session.add(subscription)
        try:
            session.commit()
        except IntegrityError:
            session.rollback()
            observe_subscription_operation("created", "conflict")
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="subscription creation conflict")
        session.refresh(subscription)

        self._after_write("created", subscription, ctx, before=None)
        if subscription.status == STATUS_EXPIRED:
            self._mark_expired_on_write(subscription, ctx)
        return self._to_subscription_read(subscription)

    def get_subscription(self, session: Session, ctx: AuthContext, subscription_id: uuid.UUID) -> SubscriptionRead:
        subscription = self._get_owned_subscription(session, ctx, subscription_id, action="view")
        return self._to_subscription_read(subscription)

    def list_subscriptions(self, session: Session, ctx: AuthContext) -> list[SubscriptionRead]:
        self._guard(lambda: self.subscription_repository.require_operator(ctx))
        rows = session.scalars(select(Subscription).order_by(Subscription.created_at.desc())).all()
        return [self._to_subscription_read(row) for row in rows]

    def list_user_subscriptions(self, session: Session, ctx: AuthContext, user_id: str) -> list[SubscriptionRead]:
        self._guard(lambda: self.subscription_repository.validate_access(ctx, owner_id=user_id, action="view"))
        stmt = self.subscription_repository.apply_scope_query(select(Subscription), ctx, owner_id=user_id)
        rows = session.scalars(stmt.order_by(Subscription.created_at.desc())).all()
        return [self._to_subscription_read(row) for row in rows]

    def update_subscription(
        self,
        session: Session,
        ctx: AuthContext,
        subscription_id: uuid.UUID,
        payload: SubscriptionUpdate,
    ) -> SubscriptionRead:
        subscription = self._get_owned_subscription(session, ctx, subscription_id, action="update")
        changes = payload.model_dump(mode="python", exclude_unset=True)
        if not changes:
            return self._to_subscription_read(subscription)

        today = self.clock()
        if "start_date" in changes:
            self._assert_start_not_in_future(changes["start_date"], today)
        if "price" in changes:
            changes["price"] = self._q(changes["price"])

        changes_requested = frozenset(changes)
        previous_status = subscription.status
        target_status = changes.get("status", subscription.status)
        if any(name in changes for name in RENEWAL_INPUT_FIELDS):
            start_date = changes.get("start_date", subscription.start_date)
            frequency = changes["frequency"] if "frequency" in changes else subscription.frequency
            if "renewal_date" in changes:
                explicit_renewal = changes["renewal_date"]
            elif "start_date" in changes or "frequency" in changes:
                explicit_renewal = None
            else:
                explicit_renewal = subscription.renewal_date
            fields = self._derive(start_date, frequency, explicit_renewal, today)
            changes["renewal_date"] = fields.renewal_date
            changes["status"] = self._resolve_status(target_status, fields)
            if (
                explicit_renewal is None
                and fields.status is None
                and "status" not in changes_requested
                and previous_status == STATUS_EXPIRED
            ):
                changes["status"] = STATUS_ACTIVE

        before = self._snapshot(subscription, sorted(changes))

        for field_name, value in changes.items():
            setattr(subscription, field_name, value)
        session.add(subscription)
        try:
            session.commit()
        except IntegrityError:
            session.rollback()
            observe_subscription_operation("updated", "conflict")
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="subscription update conflict")
        session.refresh(subscription)

        self._after_write("updated", subscription, ctx, before=before)
        if subscription.status == STATUS_EXPIRED and previous_status != STATUS_EXPIRED:
            self._mark_expired_on_write(subscription, ctx)
        return self._to_subscription_read(subscription)

    def delete_subscription(self, session: Session, ctx: AuthContext, subscription_id: uuid.UUID) -> SubscriptionDeleteResult:
        subscription = self._get_owned_subscription(session, ctx, subscription_id, action="delete")
        before = self._snapshot(subscription, ("name", "status", "renewal_date"))
        session.delete(subscription)
        try:
            session.commit()
        except IntegrityError:
            session.rollback()
            observe_subscription_operation("deleted", "conflict")
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="subscription delete conflict")

        self._after_write("deleted", subscription, ctx, before=before)
        return SubscriptionDeleteResult(id=subscription_id)

    def cancel_subscription(self, session: Session, ctx: AuthContext, subscription_id: uuid.UUID) -> SubscriptionRead:
        subscription = self._get_owned_subscription(session, ctx, subscription_id, action="cancel")
        if subscription.status not in VALID_CANCEL_SOURCES:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail=f"invalid subscription transition {subscription.status} -> {STATUS_CANCELLED}",
            )

        before = self._snapshot(subscription, ("status",))
        subscription.status = STATUS_CANCELLED
        session.add(subscription)
        session.commit()
        session.refresh(subscription)

        self._after_write("cancelled", subscription, ctx, before=before)
        return self._to_subscription_read(subscription)

    def list_upcoming_renewals(
        self,
        session: Session,
        ctx: AuthContext,
        *,
        window_days: int | None = None,
        scope: UpcomingScope = "mine",
    ) -> list[UpcomingRenewalRead]:
        settings = get_settings()
        resolved_window = settings.upcoming_renewal_window_days if window_days is None else window_days
        if resolved_window < 0 or resolved_window > settings.upcoming_renewal_max_window_days:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail=f"window must be between 0 and {settings.upcoming_renewal_max_window_days} days",
            )

        owner_filter: str | None = ctx.user_id
        if scope == "all":
            self._guard(lambda: self.subscription_repository.require_operator(ctx))
            owner_filter = None

        stmt: Select[tuple[Subscription]] = select(Subscription).where(Subscription.status == STATUS_ACTIVE)
        stmt = self.subscription_repository.apply_scope_query(stmt, ctx, owner_id=owner_filter)
        rows = session.scalars(stmt.order_by(Subscription.created_at.asc(), Subscription.id.asc())).all()

        today = self.clock()
        with subscription_span(
            "subscription.upcoming.project",
            window_days=resolved_window,
            scope=scope,
            candidate_count=len(rows),
            correlation_id=ctx.correlation_id,
        ) as span:
            upcoming = project_upcoming(rows, today, resolved_window, owner_filter)
            span.set_attribute("result_count", len(upcoming))

        observe_upcoming_renewals(scope, len(upcoming))
        logger.info(
            "subscription.upcoming",
            extra={"user_id": ctx.user_id, "scope": scope, "window_days": resolved_window, "result_count": len(upcoming)},
        )
        return [
            UpcomingRenewalRead(
                subscription=self._to_subscription_read(item.subscription),
                next_renewal_date=item.next_renewal_date,
                days_until_renewal=(item.next_renewal_date - today).days,
            )
            for item in upcoming
        ]

    def _get_owned_subscription(
        self,
        session: Session,
        ctx: AuthContext,
        subscription_id: uuid.UUID,
        *,
        action: str,
    ) -> Subscription:
        subscription = session.get(Subscription, subscription_id)
        if subscription is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="subscription not found")
        self._guard(lambda: self.subscription_repository.validate_access(ctx, owner_id=subscription.user_id, action=action))
        return subscription

    @staticmethod
    def _guard(check: Callable[[], None]) -> None:
        try:
            check()
        except AuthorizationError as exc:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc))

    @staticmethod
    def _assert_start_not_in_future(start_date: date, today: date) -> None:
        if start_date > today:
            raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="start date must be in the past")

    @staticmethod
    def _derive(start_date: date, frequency: str | None, renewal_date: date | None, today: date) -> RenewalFields:
        source = "explicit" if renewal_date is not None else "derived"
        with subscription_span("subscription.renewal.derive", frequency=frequency, source=source) as span:
            try:
                fields = derive_renewal_fields(start_date, frequency, renewal_date, today)
            except RenewalPolicyError as exc:
                raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc))
            span.set_attribute("renewal_expired", fields.status == STATUS_EXPIRED)
        observe_renewal_derivation(frequency, source)
        return fields

    @staticmethod
    def _resolve_status(requested: str, fields: RenewalFields) -> str:
        if fields.status == STATUS_EXPIRED and requested != STATUS_CANCELLED:
            return STATUS_EXPIRED
        return requested

    def _after_write(self, action: str, subscription: Subscription, ctx: AuthContext, *, before: dict[str, Any] | None) -> None:
        subscription_id = str(subscription.id)
        tracked = tuple(before) if before is not None else AUDITED_FIELDS
        after = None if action == "deleted" else self._snapshot(subscription, tracked)
        audit.record(
            actor_user_id=ctx.user_id,
            entity_type="subscription",
            entity_id=subscription_id,
            action=f"subscription.{action}",
            before=before,
            after=after,
            correlation_id=ctx.correlation_id,
        )
        self._emit_subscription_event(f"subscription.{action}", subscription, ctx)
        observe_subscription_operation(action)
        logger.info(
            f"subscription.{action}",
            extra={
                "subscription_id": subscription_id,
                "user_id": ctx.user_id,
                "frequency": subscription.frequency,
                "status": subscription.status,
            },
        )

    def _mark_expired_on_write(self, subscription: Subscription, ctx: AuthContext) -> None:
        observe_expired_on_write()
        self._emit_subscription_event("subscription.expired", subscription, ctx)

    @staticmethod
    def _emit_subscription_event(event_type: str, subscription: Subscription, ctx: AuthContext) -> None:
        events.publish(
            {
                "event_type": event_type,
                "subscription_id": str(subscription.id),
                "user_id": subscription.user_id,
                "status": subscription.status,
                "frequency": subscription.frequency,
                "renewal_date": subscription.renewal_date.isoformat() if subscription.renewal_date else None,
                "correlation_id": ctx.correlation_id,
            }
        )

    @staticmethod
    def _snapshot(subscription: Subscription, field_names: Any) -> dict[str, Any]:
        snapshot: dict[str, Any] = {}
        for field_name in field_names:
            value = getattr(subscription, field_name)
            snapshot[field_name] = value.isoformat() if isinstance(value, date) else (str(value) if isinstance(value, Decimal) else value)
        return snapshot

    @staticmethod
    def _q(value: Decimal) -> Decimal:
        return Decimal(value).quantize(Decimal("0.000001"))

    @staticmethod
    def _to_subscription_read(subscription: Subscription) -> SubscriptionRead:
        return SubscriptionRead.model_validate(subscription)


subscription_service = SubscriptionService()
