"""
callmap/models/billing.py
Filters for the invoice and payment ledgers.
"""

from typing import List, Optional

from callmap.models.common import Pagination


class InvoicesFilter(Pagination):
    teamId: Optional[str] = None
    status: Optional[List[str]] = None


class PaymentsFilter(Pagination):
    teamId: Optional[str] = None
