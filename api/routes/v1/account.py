"""
api/routes/v1/account.py -- Account balance endpoint.

Routes:
  GET /api/v1/account/balance -- the caller's own balance (requires auth)

The account is resolved by the session's durable user id. There is no path
or query parameter naming an account, so a caller cannot read anyone else's.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from api.models import BalanceResponse
from auth import service
from auth.dependencies import get_current_identity
from auth.models import TokenClaims
from auth.store import UserStore

router = APIRouter()


@router.get("/account/balance", response_model=BalanceResponse)
def balance(request: Request, identity: TokenClaims = Depends(get_current_identity)) -> BalanceResponse:
    user_store: UserStore = request.app.state.user_store
    return BalanceResponse.from_account(service.get_balance(user_store, identity))
