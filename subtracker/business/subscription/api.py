from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from subtracker.api.errors import error_response
from subtracker.business.subscription.schemas import (
    SubscriptionCreate,
    SubscriptionDeleteResult,
    SubscriptionRead,
    SubscriptionUpdate,
    UpcomingRenewalRead,
    UpcomingScope,
)
from subtracker.business.subscription.service import subscription_service
from subtracker.context import get_correlation_id
from subtracker.core.auth import AuthUser, get_current_user as get_auth_user
from subtracker.core.database import get_db
from subtracker.platform.security.context import AuthContext


router = APIRouter(prefix="/api/v1/subscriptions", tags=["subscriptions"])


def get_subscription_auth_context(request: Request, auth_user: AuthUser = Depends(get_auth_user)) -> AuthContext:
    if auth_user.is_anonymous:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="authentication required",
            headers={"WWW-Authenticate": "Bearer"},
        )
    correlation_id = get_correlation_id() or getattr(request.state, "correlation_id", None)
    return AuthContext.from_roles(auth_user.sub, auth_user.roles, correlation_id=correlation_id)


def _failed(request: Request, exc: HTTPException, code: str) -> JSONResponse:
    return error_response(
        request,
        status_code=exc.status_code,
        code=code,
        message=str(exc.detail),
        details=exc.detail,
    )


@router.post("", response_model=SubscriptionRead, status_code=status.HTTP_201_CREATED)
def create_subscription(
    request: Request,
    payload: SubscriptionCreate,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_subscription_auth_context),
) -> SubscriptionRead | JSONResponse:
    try:
        return subscription_service.create_subscription(db, ctx, payload)
    except HTTPException as exc:
        return _failed(request, exc, "subscription_create_failed")


@router.get("", response_model=list[SubscriptionRead])
def list_subscriptions(
    request: Request,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_subscription_auth_context),
) -> list[SubscriptionRead] | JSONResponse:
    try:
        return subscription_service.list_subscriptions(db, ctx)
    except HTTPException as exc:
        return _failed(request, exc, "subscription_list_failed")


@router.get("/upcoming-renewals", response_model=list[UpcomingRenewalRead])
def list_upcoming_renewals(
    request: Request,
    days: int | None = Query(default=None),
    scope: UpcomingScope = Query(default="mine"),
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_subscription_auth_context),
) -> list[UpcomingRenewalRead] | JSONResponse:
    try:
        return subscription_service.list_upcoming_renewals(db, ctx, window_days=days, scope=scope)
    except HTTPException as exc:
        return _failed(request, exc, "subscription_upcoming_failed")


@router.get("/user/{user_id}", response_model=list[SubscriptionRead])
def list_user_subscriptions(
    request: Request,
    user_id: str,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_subscription_auth_context),
) -> list[SubscriptionRead] | JSONResponse:
    try:
        return subscription_service.list_user_subscriptions(db, ctx, user_id)
    except HTTPException as exc:
        return _failed(request, exc, "subscription_list_failed")


@router.get("/{subscription_id}", response_model=SubscriptionRead)
def get_subscription(
    request: Request,
    subscription_id: uuid.UUID,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_subscription_auth_context),
) -> SubscriptionRead | JSONResponse:
    try:
        return subscription_service.get_subscription(db, ctx, subscription_id)
    except HTTPException as exc:
        return _failed(request, exc, "subscription_get_failed")


@router.put("/{subscription_id}", response_model=SubscriptionRead)
@router.patch("/{subscription_id}", response_model=SubscriptionRead)
def update_subscription(
    request: Request,
    subscription_id: uuid.UUID,
    payload: SubscriptionUpdate,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_subscription_auth_context),
) -> SubscriptionRead | JSONResponse:
    try:
        return subscription_service.update_subscription(db, ctx, subscription_id, payload)
    except HTTPException as exc:
        return _failed(request, exc, "subscription_update_failed")


@router.delete("/{subscription_id}", response_model=SubscriptionDeleteResult)
def delete_subscription(
    request: Request,
    subscription_id: uuid.UUID,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_subscription_auth_context),
) -> SubscriptionDeleteResult | JSONResponse:
    try:
        return subscription_service.delete_subscription(db, ctx, subscription_id)
    except HTTPException as exc:
        return _failed(request, exc, "subscription_delete_failed")


@router.put("/{subscription_id}/cancel", response_model=SubscriptionRead)
def cancel_subscription(
    request: Request,
    subscription_id: uuid.UUID,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_subscription_auth_context),
) -> SubscriptionRead | JSONResponse:
    try:
        return subscription_service.cancel_subscription(db, ctx, subscription_id)
    except HTTPException as exc:
        return _failed(request, exc, "subscription_cancel_failed")
