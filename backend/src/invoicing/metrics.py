"""Business metrics for Prometheus monitoring."""
from prometheus_client import Counter

# Invoice metrics
invoices_created_total = Counter(
    "invoices_created_total",
    "Total number of invoices created",
    labelnames=["initial_status"],  # Draft, Unpaid
)

invoices_finalized_total = Counter(
    "invoices_finalized_total",
    "Total number of draft invoices finalized",
)

invoice_status_transitions_total = Counter(
    "invoice_status_transitions_total",
    "Invoice status changes written by the status engine",
    labelnames=["from_status", "to_status"],
)

invoice_number_conflicts_total = Counter(
    "invoice_number_conflicts_total",
    "Sequential invoice numbers that collided with an existing invoice",
)

# Payment metrics
payments_recorded_total = Counter(
    "payments_recorded_total",
    "Payments created, updated or deleted",
    labelnames=["operation"],  # create, update, delete
)

payments_rejected_total = Counter(
    "payments_rejected_total",
    "Payment mutations rejected by business rules",
    labelnames=["reason"],  # invalid_amount, not_allowed, exceeds_balance
)

payment_amount_total = Counter(
    "payment_amount_total",
    "Total amount received through recorded payments",
    labelnames=["method"],
)
