"""
The six entity definitions served by MemberDB.

Column names and declared SQL types match the tables the service has
always created, so an existing mydatabase.db keeps working.
"""

from __future__ import annotations

from .registry import SchemaRegistry
from .types import EntityDef, EntityKind, column

Product = EntityDef(
    kind=EntityKind.PRODUCT,
    table="product",
    route="products",
    columns=(
        column("package_id", "ref", description="Package grouping, not a table"),
        column("name", "text", sql_type="VARCHAR(20)"),
        column("price", "number"),
        column("description", "text", sql_type="VARCHAR(1000)"),
        column("duration", "integer"),
        column("picture", "text"),
    ),
    attachment="picture",
    description="Something a member can buy, e.g. a gym pass",
)

User = EntityDef(
    kind=EntityKind.USER,
    table="user",
    route="users",
    columns=(
        column("email", "text", sql_type="VARCHAR(30)"),
        column("password", "text", sql_type="VARCHAR(20)"),
        column("firstname", "text", sql_type="VARCHAR(50)"),
        column("lastname", "text", sql_type="VARCHAR(50)"),
        column("tel", "text", sql_type="VARCHAR(20)"),
        column("date_of_birth", "date"),
        column("id_card_number", "integer"),
        column("member_type", "text", sql_type="VARCHAR"),
    ),
)

Subscription = EntityDef(
    kind=EntityKind.SUBSCRIPTION,
    table="subscription",
    route="subscriptions",
    columns=(
        column("product_id", "ref", references="product"),
        column("customer", "ref", references="user"),
        column("payment", "ref", references="payment"),
        column("end_date", "date"),
    ),
)

Payment = EntityDef(
    kind=EntityKind.PAYMENT,
    table="payment",
    route="payments",
    columns=(
        column("payment_owner", "ref", references="user"),
        column("method", "text", sql_type="VARCHAR(255)"),
        column("date", "date"),
        column("picture", "text", description="Receipt image location"),
    ),
    attachment="picture",
)

Promotion = EntityDef(
    kind=EntityKind.PROMOTION,
    table="promotion",
    route="promotions",
    columns=(
        column("start_date", "date"),
        column("end_date", "date"),
        column("promotion_product", "ref", references="product"),
        column("discount_percent", "number"),
        column("discount_code", "text", sql_type="VARCHAR(7)"),
    ),
)

Contact = EntityDef(
    kind=EntityKind.CONTACT,
    table="contact",
    route="contacts",
    columns=(
        column("contact_name", "text", sql_type="VARCHAR(100)"),
        column("contact_email", "text", sql_type="VARCHAR(50)"),
        column("contact_tel", "text", sql_type="VARCHAR(10)"),
        column("title", "text", sql_type="VARCHAR(100)"),
        column("detail", "text", sql_type="VARCHAR(500)"),
    ),
)

ALL_ENTITIES: tuple[EntityDef, ...] = (Product, User, Subscription, Payment, Promotion, Contact)


def build_registry() -> SchemaRegistry:
    """Create the frozen registry holding every entity above."""
    registry = SchemaRegistry()
    for entity in ALL_ENTITIES:
        registry.register(entity)
    registry.freeze()
    return registry
