from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow

SALE_ACTIVE = "ACTIVE"
SALE_CHANGED = "CHANGED"
SALE_CANCELLED = "CANCELLED"
SALE_STATES = (SALE_ACTIVE, SALE_CHANGED, SALE_CANCELLED)

PAYMENT_CASH = "CASH"
PAYMENT_CARD = "CARD"
PAYMENT_METHODS = (PAYMENT_CASH, PAYMENT_CARD)


class Sale(db.Model):
    """
    One product line sold at an event.

    Lifecycle: ACTIVE -> CHANGED (full exchange) or ACTIVE -> CANCELLED
    (compensating IN movement). Both end states are terminal.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.CheckConstraint("quantity_sold > 0", name="ck_sales_quantity_positive"),
        db.CheckConstraint("value_charged_cents > 0", name="ck_sales_value_positive"),
        db.Index("ix_sales_event_state_date", "event_id", "state", "date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    event_id = db.Column(db.Integer, db.ForeignKey("events.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    artisan_id = db.Column(db.Integer, db.ForeignKey("artisans.id"), nullable=False, index=True)

    quantity_sold = db.Column(db.Integer, nullable=False)
    # Amount actually collected; may differ from price x quantity
    value_charged_cents = db.Column(db.Integer, nullable=False)
    payment_method = db.Column(db.String(8), nullable=False)
    card_fee_cents = db.Column(db.Integer, nullable=True)

    state = db.Column(db.String(16), nullable=False, default=SALE_ACTIVE, index=True)

    date = db.Column(db.DateTime, nullable=False, default=utcnow)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    event = db.relationship("Event")
    product = db.relationship("Product")
    artisan = db.relationship("Artisan")
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def total_amount_cents(self) -> int:
        """List price x quantity; display value, valueCharged is the ledger fact."""
        return self.product.price_cents * self.quantity_sold

    def __repr__(self) -> str:
        return f"<Sale id={self.id} product_id={self.product_id} qty={self.quantity_sold} state={self.state}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "event_id": self.event_id,
            "product_id": self.product_id,
            "artisan_id": self.artisan_id,
            "quantity_sold": self.quantity_sold,
            "value_charged_cents": self.value_charged_cents,
            "payment_method": self.payment_method,
            "card_fee_cents": self.card_fee_cents,
            "state": self.state,
            "total_amount_cents": self.total_amount_cents,
            "date": to_utc_z(self.date),
            "created_at": to_utc_z(self.created_at),
            "version_id": self.version_id,
        }


class ProductChange(db.Model):
    """
    Exchange of sold units for another product of equal or higher value.

    At most one per sale (unique sale_id). Owns one IN movement for the
    returned product and one OUT movement for the delivered product.
    """
    __tablename__ = "product_changes"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_product_changes_quantity_positive"),
        db.CheckConstraint(
            "product_returned_id <> product_delivered_id",
            name="ck_product_changes_distinct_products",
        ),
        db.CheckConstraint("value_difference_cents >= 0", name="ck_product_changes_no_downgrade"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, unique=True)
    product_returned_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    product_delivered_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    # Price snapshot at exchange time
    delivered_product_price_cents = db.Column(db.Integer, nullable=False)
    value_difference_cents = db.Column(db.Integer, nullable=False, default=0)
    payment_method_difference = db.Column(db.String(8), nullable=True)
    card_fee_difference_cents = db.Column(db.Integer, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow, index=True)

    sale = db.relationship("Sale")
    returned_product = db.relationship("Product", foreign_keys=[product_returned_id])
    delivered_product = db.relationship("Product", foreign_keys=[product_delivered_id])

    def __repr__(self) -> str:
        return (
            f"<ProductChange id={self.id} sale_id={self.sale_id} "
            f"{self.product_returned_id}->{self.product_delivered_id} qty={self.quantity}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "product_returned_id": self.product_returned_id,
            "product_delivered_id": self.product_delivered_id,
            "quantity": self.quantity,
            "delivered_product_price_cents": self.delivered_product_price_cents,
            "value_difference_cents": self.value_difference_cents,
            "payment_method_difference": self.payment_method_difference,
            "card_fee_difference_cents": self.card_fee_difference_cents,
            "created_at": to_utc_z(self.created_at),
        }
