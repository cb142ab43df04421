"""SQLAlchemy ORM models for the invoicing engine."""
# Import all models here to ensure they are registered with Alembic

from invoicing.models.base import Base
from invoicing.models.party import Buyer, Supplier, Product
from invoicing.models.invoice import Invoice, InvoiceItem, InvoiceStatus
from invoicing.models.payment import Payment

__all__ = [
    "Base",
    "Buyer",
    "Supplier",
    "Product",
    "Invoice",
    "InvoiceItem",
    "InvoiceStatus",
    "Payment",
]
