"""
callmap/features/billing/service.py

Billing summary: MRR from workspace plans, revenue and outstanding balance
from invoices (payments when no invoices are recorded). Invoice and payment
ledgers for the billing tables.
"""

from datetime import datetime
from typing import Any, Dict, List

from callmap.core.collections import COLLECTION_INVOICES, COLLECTION_PAYMENTS, COLLECTION_WORKSPACES
from callmap.core.database import Document, DocumentStore
from callmap.core.dates import first_isoformat, is_in_range
from callmap.features.analytics.reducers import as_number, number
from callmap.features.billing.plans import DEFAULT_PLAN, plan_price
from callmap.models.billing import InvoicesFilter, PaymentsFilter

SETTLED_INVOICE_STATUSES = ("paid", "void")


def _amount(doc: Document) -> float:
    return number(doc.get("amountUsd")) or number(doc.get("amount_usd"))


def billing_metrics(store: DocumentStore, start: datetime, end: datetime) -> Dict[str, Any]:
    mrr = 0
    paying_teams = 0
    for workspace in store.stream(COLLECTION_WORKSPACES):
        plan = workspace.get("plan") or DEFAULT_PLAN
        if plan != DEFAULT_PLAN:
            mrr += plan_price(plan)
            paying_teams += 1

    invoices = store.stream(COLLECTION_INVOICES)
    total_revenue = 0.0
    unpaid = 0.0
    if invoices:
        for invoice in invoices:
            if is_in_range(invoice.get("createdAt"), start, end):
                total_revenue += _amount(invoice)
            if invoice.get("status") not in SETTLED_INVOICE_STATUSES:
                unpaid += _amount(invoice)
    else:
        total_revenue = sum(
            _amount(payment)
            for payment in store.stream(COLLECTION_PAYMENTS)
            if is_in_range(payment.get("createdAt"), start, end)
        )

    return {
        "mrr": mrr,
        "totalRevenue": as_number(total_revenue),
        "unpaidInvoices": as_number(unpaid),
        "payingTeams": paying_teams,
    }


def _team_id(doc: Document) -> str:
    return doc.get("workspaceId") or doc.get("teamId") or ""


def list_invoices(store: DocumentStore, criteria: InvoicesFilter) -> List[Dict[str, Any]]:
    rows = [
        {
            "id": doc.id,
            "team_id": _team_id(doc),
            "amount_usd": as_number(_amount(doc)),
            "status": doc.get("status") or "open",
            "due_date": first_isoformat(doc, "dueDate", "due_date"),
            "paid_at": first_isoformat(doc, "paidAt", "paid_at"),
            "period_start": first_isoformat(doc, "periodStart", "period_start"),
            "period_end": first_isoformat(doc, "periodEnd", "period_end"),
        }
        for doc in store.stream(COLLECTION_INVOICES)
    ]
    if criteria.teamId:
        rows = [row for row in rows if row["team_id"] == criteria.teamId]
    if criteria.status:
        rows = [row for row in rows if row["status"] in criteria.status]
    rows.sort(key=lambda row: row["due_date"] or "", reverse=True)
    return rows


def list_payments(store: DocumentStore, criteria: PaymentsFilter) -> List[Dict[str, Any]]:
    rows = [
        {
            "id": doc.id,
            "team_id": _team_id(doc),
            "amount_usd": as_number(_amount(doc)),
            "provider": doc.get("provider") or "stripe",
            "provider_charge_id": doc.get("providerChargeId") or doc.get("provider_charge_id"),
            "created_at": first_isoformat(doc, "createdAt"),
        }
        for doc in store.stream(COLLECTION_PAYMENTS)
    ]
    if criteria.teamId:
        rows = [row for row in rows if row["team_id"] == criteria.teamId]
    rows.sort(key=lambda row: row["created_at"] or "", reverse=True)
    return rows
