"""
Stock tree tables.

Rows are created and deleted by the catalog; this service only rewrites
`quantity`. A size variant hangs off its colour by label, so a colour row is
optional even when sizes of that colour exist.
"""

import uuid

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Integer, String, UniqueConstraint, Uuid
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base


class Product(Base):
    __tablename__ = "products"
    __table_args__ = (CheckConstraint("quantity >= 0", name="ck_products_quantity_non_negative"),)

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String, nullable=False, index=True)
    reference = Column(String, nullable=True, unique=True, index=True)
    price_minor = Column(Integer, nullable=False, default=0)  # unit price in cents
    quantity = Column(Integer, nullable=False, default=0)
    updated_at = Column(DateTime, nullable=False, server_default=func.now(), onupdate=func.now())

    colors = relationship(
        "ProductColor",
        back_populates="product",
        cascade="all, delete-orphan",
    )
    sizes = relationship(
        "ProductSize",
        back_populates="product",
        cascade="all, delete-orphan",
    )

    @property
    def to_schema(self):
        return {
            "id": self.id,
            "name": self.name,
            "reference": self.reference,
            "price_minor": int(self.price_minor or 0),
            "price": float(self.price_minor or 0) / 100.0,
            "quantity": int(self.quantity or 0),
        }


class ProductColor(Base):
    __tablename__ = "product_colors"
    __table_args__ = (
        UniqueConstraint("product_id", "color", name="ux_product_colors_product_color"),
        CheckConstraint("quantity >= 0", name="ck_product_colors_quantity_non_negative"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    product_id = Column(Uuid, ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)
    color = Column(String, nullable=False)
    reference = Column(String, nullable=True)
    quantity = Column(Integer, nullable=False, default=0)
    updated_at = Column(DateTime, nullable=False, server_default=func.now(), onupdate=func.now())

    product = relationship("Product", back_populates="colors")

    @property
    def to_schema(self):
        return {
            "id": self.id,
            "color": self.color,
            "reference": self.reference,
            "quantity": int(self.quantity or 0),
        }


class ProductSize(Base):
    __tablename__ = "product_sizes"
    __table_args__ = (
        UniqueConstraint("product_id", "color", "size", name="ux_product_sizes_product_color_size"),
        CheckConstraint("quantity >= 0", name="ck_product_sizes_quantity_non_negative"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    product_id = Column(Uuid, ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)
    color = Column(String, nullable=False)
    size = Column(String, nullable=False)
    reference = Column(String, nullable=True)
    quantity = Column(Integer, nullable=False, default=0)
    updated_at = Column(DateTime, nullable=False, server_default=func.now(), onupdate=func.now())

    product = relationship("Product", back_populates="sizes")

    @property
    def to_schema(self):
        return {
            "id": self.id,
            "color": self.color,
            "size": self.size,
            "reference": self.reference,
            "quantity": int(self.quantity or 0),
        }
