from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow

MOVEMENT_IN = "IN"
MOVEMENT_OUT = "OUT"
MOVEMENT_TYPES = (MOVEMENT_IN, MOVEMENT_OUT)

REASON_INITIAL_LOAD = "initial load"
REASON_DIRECT_SALE = "direct sale"
REASON_SALE_CANCELLATION = "sale cancellation"
REASON_EXCHANGE_RETURN = "return from exchange"
REASON_EXCHANGE_DELIVERY = "delivery from exchange"


class Product(db.Model):
    """
    An artisan's product offered at one event.

    Stock is NOT a column: it is always derived from InventoryMovement rows
    (see services.ledger_service.current_stock).
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("name", "event_id", "artisan_id", name="uq_products_name_event_artisan"),
        db.CheckConstraint("price_cents > 0", name="ck_products_price_positive"),
        db.Index("ix_products_event_artisan", "event_id", "artisan_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    price_cents = db.Column(db.Integer, nullable=False)
    category = db.Column(db.String(100), nullable=True)

    event_id = db.Column(db.Integer, db.ForeignKey("events.id"), nullable=False, index=True)
    artisan_id = db.Column(db.Integer, db.ForeignKey("artisans.id"), nullable=False, index=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    event = db.relationship("Event")
    artisan = db.relationship("Artisan")

    def __repr__(self) -> str:
        return f"<Product id={self.id} name={self.name!r} event_id={self.event_id} artisan_id={self.artisan_id}>"

    def to_dict(self, stock: int | None = None) -> dict:
        data = {
            "id": self.id,
            "name": self.name,
            "price_cents": self.price_cents,
            "category": self.category,
            "event_id": self.event_id,
            "artisan_id": self.artisan_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if stock is not None:
            data["stock"] = stock
        return data


class InventoryMovement(db.Model):
    """
    Append-only stock ledger entry.

    A movement is owned by at most one of: a sale (sale_id) or a product
    change (change_id). Rows with neither are direct stocking entries.
    """
    __tablename__ = "inventory_movements"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_invmov_quantity_positive"),
        db.CheckConstraint("type IN ('IN', 'OUT')", name="ck_invmov_type"),
        db.CheckConstraint(
            "sale_id IS NULL OR change_id IS NULL",
            name="ck_invmov_single_owner",
        ),
        db.UniqueConstraint("product_id", "sale_id", "type", name="uq_invmov_product_sale_type"),
        db.UniqueConstraint("product_id", "change_id", "type", name="uq_invmov_product_change_type"),
        db.Index("ix_invmov_product_type", "product_id", "type"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    type = db.Column(db.String(8), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    reason = db.Column(db.String(255), nullable=True)

    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=True, index=True)
    change_id = db.Column(db.Integer, db.ForeignKey("product_changes.id"), nullable=True, index=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow, index=True)

    product = db.relationship("Product")

    @property
    def signed_quantity(self) -> int:
        return self.quantity if self.type == MOVEMENT_IN else -self.quantity

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.type,
            "quantity": self.quantity,
            "reason": self.reason,
            "product_id": self.product_id,
            "sale_id": self.sale_id,
            "change_id": self.change_id,
            "created_at": to_utc_z(self.created_at),
        }
