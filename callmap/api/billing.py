"""
callmap/api/billing.py

Billing summary and the invoice/payment ledgers for the admin dashboard.
"""

from typing import Any, Dict

from fastapi import APIRouter, Depends

from callmap.core.database import get_store
from callmap.core.permissions import SessionClaims, require_admin
from callmap.core.responses import list_response, paginate
from callmap.features.billing.service import billing_metrics, list_invoices, list_payments
from callmap.models.billing import InvoicesFilter, PaymentsFilter
from callmap.models.common import DateRange

router = APIRouter()


@router.post("/metrics", response_model=Dict[str, Any])
def metrics(body: DateRange, claims: SessionClaims = Depends(require_admin)):
    """``{mrr, totalRevenue, unpaidInvoices, payingTeams}`` (bare object)."""
    return billing_metrics(get_store(), body.start, body.end)


@router.post("/invoices", response_model=Dict[str, Any])
def invoices(body: InvoicesFilter = InvoicesFilter(), claims: SessionClaims = Depends(require_admin)):
    rows = list_invoices(get_store(), body)
    return list_response(paginate(rows, body.page, body.page_size), total=len(rows))


@router.post("/payments", response_model=Dict[str, Any])
def payments(body: PaymentsFilter = PaymentsFilter(), claims: SessionClaims = Depends(require_admin)):
    rows = list_payments(get_store(), body)
    return list_response(paginate(rows, body.page, body.page_size), total=len(rows))
