"""Firestore collection names (schema-in-code).

Firestore has no DDL; these constants are the single source of truth for
where each entity lives. Sub-collections are addressed with ``subcollection``.
"""

COLLECTION_USERS = "users"
COLLECTION_WORKSPACES = "workspaces"
COLLECTION_MINDMAPS = "mindmaps"
COLLECTION_PROCESSING_JOBS = "processingJobs"
COLLECTION_ANALYTICS_EVENTS = "analyticsEvents"

# Billing
COLLECTION_SUBSCRIPTIONS = "subscriptions"
COLLECTION_INVOICES = "invoices"
COLLECTION_PAYMENTS = "payments"
COLLECTION_CREDITS = "credits"

# Security & compliance
COLLECTION_AUDIT_LOGS = "auditLogs"
COLLECTION_INCIDENTS = "incidents"
COLLECTION_DELETION_REQUESTS = "deletionRequests"
COLLECTION_SECURITY_EVENTS = "security_events"
COLLECTION_SUPPORT_ERRORS = "support_error_events"

# Developer surface
COLLECTION_API_KEYS = "apiKeys"
COLLECTION_WEBHOOK_ENDPOINTS = "webhookEndpoints"
COLLECTION_FEATURE_FLAG_OVERRIDES = "featureFlagOverrides"

# Dashboard builder
COLLECTION_CUSTOM_DASHBOARDS = "customDashboards"

# Sub-collections
SUBCOLLECTION_MEMBERS = "members"
SUBCOLLECTION_WEEKLY_ACTIVITY = "weeklyActivity"
SUBCOLLECTION_WALLET_TRANSACTIONS = "walletTransactions"


def subcollection(parent: str, doc_id: str, name: str) -> str:
    """Slash-joined path of a sub-collection, e.g. ``users/u1/weeklyActivity``."""
    return f"{parent}/{doc_id}/{name}"
