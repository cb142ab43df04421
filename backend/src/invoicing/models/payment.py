"""Payment model for receipts recorded against an invoice."""
from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, Numeric, String, Text, Uuid
from sqlalchemy.orm import relationship

from invoicing.models.base import Base


class Payment(Base):
    """
    One receipt against an invoice.

    ``amount`` is what counts towards the invoice; ``round_off`` records the
    part of what the payer handed over that was absorbed as a rounding
    adjustment. The sum of amounts for an invoice never exceeds its total.
    """

    __tablename__ = "payments"

    invoice_id = Column(Uuid(as_uuid=True), ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False, index=True)
    amount = Column(Numeric(12, 2), nullable=False)
    round_off = Column(Numeric(12, 2), nullable=False, default=0)
    method = Column(String, nullable=False, default="Cash")
    reference = Column(Text, nullable=True)
    received_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)
    created_by = Column(Uuid(as_uuid=True), nullable=True, index=True)  # actor id from the auth layer

    # Relationships
    invoice = relationship("Invoice", back_populates="payments")

    def __repr__(self) -> str:
        """String representation."""
        return f"<Payment(id={self.id}, invoice_id={self.invoice_id}, amount={self.amount}, method={self.method})>"
