from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text, Uuid
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from ..database import Base


class StockMovement(Base):
    __tablename__ = "stock_movements"

    # Monotonic id doubles as the ledger order.
    id = Column(Integer, primary_key=True, autoincrement=True)

    product_id = Column(Uuid, ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)
    color_variant_id = Column(Uuid, ForeignKey("product_colors.id", ondelete="CASCADE"), nullable=True, index=True)
    size_variant_id = Column(Uuid, ForeignKey("product_sizes.id", ondelete="CASCADE"), nullable=True, index=True)
    node_kind = Column(Text, nullable=False)  # 'PRODUCT' | 'COLOR' | 'SIZE'

    reason_code = Column(Text, nullable=False, index=True)
    previous_quantity = Column(Integer, nullable=False)
    new_quantity = Column(Integer, nullable=False)
    quantity_delta = Column(Integer, nullable=False)
    note = Column(Text, nullable=True)

    created_by = Column(String, nullable=False, default="admin")
    created_at = Column(DateTime, nullable=False, server_default=func.now(), index=True)

    product = relationship("Product")

    @property
    def to_schema(self):
        return {
            "id": self.id,
            "product_id": self.product_id,
            "color_variant_id": self.color_variant_id,
            "size_variant_id": self.size_variant_id,
            "node_kind": self.node_kind,
            "reason_code": self.reason_code,
            "previous_quantity": int(self.previous_quantity),
            "new_quantity": int(self.new_quantity),
            "quantity_delta": int(self.quantity_delta),
            "note": self.note,
            "created_by": self.created_by,
            "created_at": self.created_at,
        }
