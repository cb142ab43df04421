"""Master data the invoicing core links to: buyers, suppliers and products.

These tables are owned by the surrounding CRUD application. Only the columns
the invoice engine reads are mapped here.
"""
from sqlalchemy import Column, ForeignKey, Numeric, String, Uuid
from sqlalchemy.orm import relationship

from invoicing.models.base import Base


class Buyer(Base):
    """Customer an invoice is issued to."""

    __tablename__ = "buyers"

    name = Column(String, nullable=False, index=True)
    email = Column(String, nullable=True)
    gstin = Column(String, nullable=True)
    state = Column(String, nullable=True)

    invoices = relationship("Invoice", back_populates="buyer")

    def __repr__(self) -> str:
        """String representation."""
        return f"<Buyer(id={self.id}, name={self.name})>"


class Supplier(Base):
    """Supplier of catalogue products."""

    __tablename__ = "suppliers"

    name = Column(String, nullable=False, index=True)
    gstin = Column(String, nullable=True)

    products = relationship("Product", back_populates="supplier")
    invoices = relationship("Invoice", back_populates="supplier")

    def __repr__(self) -> str:
        """String representation."""
        return f"<Supplier(id={self.id}, name={self.name})>"


class Product(Base):
    """Catalogue product; invoice lines may reference one."""

    __tablename__ = "products"

    title = Column(String, nullable=False)
    price = Column(Numeric(12, 2), nullable=False, default=0)
    gst = Column(Numeric(5, 2), nullable=False, default=0)
    hsn_code = Column(String, nullable=True)
    supplier_id = Column(Uuid(as_uuid=True), ForeignKey("suppliers.id"), nullable=True, index=True)

    supplier = relationship("Supplier", back_populates="products")

    def __repr__(self) -> str:
        """String representation."""
        return f"<Product(id={self.id}, title={self.title}, supplier_id={self.supplier_id})>"
