"""
callmap/features/wallet/service.py

Token wallet: transaction history and admin balance adjustments.

A balance adjustment is a single store transaction (read user, append a
``walletTransactions`` doc, update ``tokenBalance``). The audit trail,
analytics event and security event are written afterwards and are best
effort.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import Request
from google.api_core.exceptions import GoogleAPICallError

from callmap.core.collections import (
    COLLECTION_ANALYTICS_EVENTS,
    COLLECTION_USERS,
    SUBCOLLECTION_WALLET_TRANSACTIONS,
    subcollection,
)
from callmap.core.database import DocumentStore, Transaction
from callmap.core.dates import isoformat_z
from callmap.core.errors import AppError, ValidationError
from callmap.core.permissions import SessionClaims
from callmap.core.queries import ordered_query
from callmap.core.responses import not_found_error
from callmap.features.analytics.reducers import number
from callmap.features.audit.service import log_security_event, record_audit_log

logger = logging.getLogger("callmap")

DEFAULT_NOTE = "Manual adjustment by admin"
ADJUSTMENT_SOURCE = "manual-adjustment"


@dataclass(frozen=True)
class WalletAdjustment:
    transaction: Dict[str, Any]
    previous_balance: int
    new_balance: int


def _serialize(value: Any) -> Any:
    return isoformat_z(value) if isinstance(value, datetime) else value


def list_transactions(store: DocumentStore, user_id: str) -> List[Dict[str, Any]]:
    """Every wallet transaction of a user, newest first; the caller paginates."""
    path = subcollection(COLLECTION_USERS, user_id, SUBCOLLECTION_WALLET_TRANSACTIONS)
    outcome = ordered_query(store, path, "createdAt", descending=True)
    return [{key: _serialize(value) for key, value in doc.to_dict().items()} for doc in outcome]


def adjust_balance(store: DocumentStore, user_id: str, amount: int, note: Optional[str], *, now: datetime) -> WalletAdjustment:
    if amount == 0:
        raise ValidationError("Amount cannot be zero")
    note = note or DEFAULT_NOTE

    def apply(txn: Transaction) -> WalletAdjustment:
        user = txn.get(COLLECTION_USERS, user_id)
        if user is None:
            raise not_found_error("User")

        current = int(number(user.get("tokenBalance")))
        new_balance = current + amount
        if new_balance < 0:
            raise ValidationError(f"Insufficient balance. Current: {current}, Adjustment: {amount}")

        wallet_tx = {
            "userId": user_id,
            "type": "adjustment",
            "amount": amount,
            "balanceAfter": new_balance,
            "source": ADJUSTMENT_SOURCE,
            "note": note,
            "createdAt": now,
        }
        tx_id = txn.create(subcollection(COLLECTION_USERS, user_id, SUBCOLLECTION_WALLET_TRANSACTIONS), wallet_tx)
        txn.update(COLLECTION_USERS, user_id, {"tokenBalance": new_balance, "updatedAt": now})
        return WalletAdjustment(
            transaction={"id": tx_id, **wallet_tx, "createdAt": isoformat_z(now)},
            previous_balance=current,
            new_balance=new_balance,
        )

    return store.run_transaction(apply)


def _record_wallet_event(store: DocumentStore, user_id: str, amount: int, balance_after: int, now: datetime) -> None:
    event = {
        "type": "wallet_tx",
        "eventType": "wallet_tx",
        "userId": user_id,
        "amount": amount,
        "balanceAfter": balance_after,
        "source": ADJUSTMENT_SOURCE,
        "timestamp": now,
    }
    try:
        store.add(COLLECTION_ANALYTICS_EVENTS, event)
    except (AppError, GoogleAPICallError, RuntimeError, OSError) as exc:
        logger.error(f"Wallet analytics event write failed for {user_id}: {exc}")


def adjust_and_record(
    store: DocumentStore,
    request: Request,
    claims: SessionClaims,
    user_id: str,
    amount: int,
    note: Optional[str],
) -> WalletAdjustment:
    """Adjust a balance, then append the audit trail entries for it."""
    now = datetime.now(timezone.utc)
    result = adjust_balance(store, user_id, amount, note, now=now)

    details = {
        "amount": amount,
        "previousBalance": result.previous_balance,
        "newBalance": result.new_balance,
        "note": note or DEFAULT_NOTE,
    }
    record_audit_log(
        "wallet_adjustment",
        admin_user_id=claims.uid,
        admin_email=claims.email,
        target_user_id=user_id,
        details=details,
        request=request,
        store=store,
    )
    _record_wallet_event(store, user_id, amount, result.new_balance, now)
    log_security_event(
        "wallet_adjustment",
        action="adjust_balance",
        result="success",
        request=request,
        user_id=claims.uid,
        user_email=claims.email,
        resource=f"users/{user_id}/wallet",
        details=details,
        store=store,
    )
    return result
