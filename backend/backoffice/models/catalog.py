from __future__ import annotations

from ..extensions import db
from ..money import format_money


class Product(db.Model):
    """
    Product with split stock.

    WHY: Stock lives in two places (front of shop, warehouse). Purchases
    usually land in the warehouse, sales usually leave from the front.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.CheckConstraint("front_quantity >= 0", name="ck_products_front_nonneg"),
        db.CheckConstraint("warehouse_quantity >= 0", name="ck_products_warehouse_nonneg"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False, index=True)
    sale_price = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    front_quantity = db.Column(db.Integer, nullable=False, default=0)
    warehouse_quantity = db.Column(db.Integer, nullable=False, default=0)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def total_quantity(self) -> int:
        return (self.front_quantity or 0) + (self.warehouse_quantity or 0)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "sale_price": format_money(self.sale_price),
            "front_quantity": self.front_quantity,
            "warehouse_quantity": self.warehouse_quantity,
            "total_quantity": self.total_quantity,
            "is_active": self.is_active,
        }


class BankAccount(db.Model):
    __tablename__ = "bank_accounts"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    bank_name = db.Column(db.String(128), nullable=False)
    account_number = db.Column(db.String(64), nullable=False, unique=True)
    account_title = db.Column(db.String(128), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "bank_name": self.bank_name,
            "account_number": self.account_number,
            "account_title": self.account_title,
            "is_active": self.is_active,
        }


class Card(db.Model):
    __tablename__ = "cards"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(128), nullable=False, unique=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "is_active": self.is_active}


class User(db.Model):
    """Acting user identity; credentials are managed elsewhere."""
    __tablename__ = "users"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(64), nullable=False, unique=True)
    name = db.Column(db.String(128), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    @property
    def display_name(self) -> str:
        return self.name or self.username

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "username": self.username,
            "name": self.name,
            "is_active": self.is_active,
        }
