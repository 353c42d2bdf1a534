#   Copyright 2026 UCP Authors
#
#   Licensed under the Apache License, Version 2.0 (the "License");
#   you may not use this file except in compliance with the License.
#   You may obtain a copy of the License at
#
#       http://www.apache.org/licenses/LICENSE-2.0
#
#   Unless required by applicable law or agreed to in writing, software
#   distributed under the License is distributed on an "AS IS" BASIS,
#   WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
#   See the License for the specific language governing permissions and
#   limitations under the License.

"""Database management and persistence layer for the checkout server.

This module provides the schema definitions, database session management, and
asynchronous data access helpers used by the server. It utilizes SQLAlchemy with
SQLite (via aiosqlite) and separates product catalog data from transactional
data (inventory, checkout sessions and orders).

Key features include:
- `DatabaseManager`: Handles asynchronous engine initialization and session
  factory setup for both 'Products' and 'Transactions' databases.
- WAL Mode: Enables SQLite Write-Ahead Logging so request handlers and the
  housekeeping scripts can share the files.
- Declarative Models: Tables for products, inventory, checkout sessions,
  orders and order items.
- Data Access Helpers: Asynchronous functions for the reads and writes the
  collaborator adapters in `services/` need.
"""

import logging
from typing import Any
from typing import Dict
from typing import List
from typing import Optional

from sqlalchemy import Boolean
from sqlalchemy import Column
from sqlalchemy import delete
from sqlalchemy import ForeignKey
from sqlalchemy import Integer
from sqlalchemy import JSON
from sqlalchemy import select
from sqlalchemy import String
from sqlalchemy import text
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncEngine
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.orm import declarative_base
from sqlalchemy.orm import relationship
from sqlalchemy.orm import selectinload
from sqlalchemy.orm import sessionmaker

logger = logging.getLogger(__name__)

ProductBase = declarative_base()
TransactionBase = declarative_base()


class DatabaseManager:
  """Manages database engines and sessions without using global variables."""

  def __init__(self) -> None:
    self.products_engine: Optional[AsyncEngine] = None
    self.transactions_engine: Optional[AsyncEngine] = None
    self.products_session_factory: Optional[sessionmaker] = None
    self.transactions_session_factory: Optional[sessionmaker] = None

  async def _open(self, path: str, base) -> tuple[AsyncEngine, sessionmaker]:
    engine = create_async_engine(f"sqlite+aiosqlite:///{path}", echo=False)

    async with engine.connect() as conn:
      await conn.execute(text("PRAGMA journal_mode=WAL"))

    session_factory = sessionmaker(
        engine, expire_on_commit=False, class_=AsyncSession
    )

    async with engine.begin() as conn:
      await conn.run_sync(base.metadata.create_all)
    return engine, session_factory

  async def init_dbs(self, products_path: str, transactions_path: str) -> None:
    """Initializes database engines and creates tables."""
    logger.info(
        "Opening products DB %s and transactions DB %s",
        products_path,
        transactions_path,
    )
    self.products_engine, self.products_session_factory = await self._open(
        products_path, ProductBase
    )
    self.transactions_engine, self.transactions_session_factory = (
        await self._open(transactions_path, TransactionBase)
    )

  async def close(self) -> None:
    """Closes all database engines."""
    if self.products_engine:
      await self.products_engine.dispose()
    if self.transactions_engine:
      await self.transactions_engine.dispose()


# Global manager instance (to be initialized via lifespan)
manager = DatabaseManager()


class Product(ProductBase):
  __tablename__ = "products"

  id = Column(String, primary_key=True)  # SKU
  name = Column(String)
  unit_price = Column(Integer)  # In minor units (øre)
  currency = Column(String, default="NOK")
  published = Column(Boolean, default=True)


class Inventory(TransactionBase):
  __tablename__ = "inventory"

  product_id = Column(String, primary_key=True)
  quantity = Column(Integer, default=0)


class CheckoutSession(TransactionBase):
  __tablename__ = "checkout_sessions"

  id = Column(String, primary_key=True)
  status = Column(String, index=True)
  # SQLAlchemy JSON type handles serialization automatically
  data = Column(JSON)
  created_at = Column(String)
  updated_at = Column(String, index=True)


class Order(TransactionBase):
  __tablename__ = "orders"

  id = Column(String, primary_key=True)
  checkout_id = Column(String, index=True)
  status = Column(String)
  customer_email = Column(String, index=True)
  customer_name = Column(String, nullable=True)
  total_amount = Column(Integer)
  currency = Column(String)
  shipping_address = Column(JSON, nullable=True)
  payment_reference = Column(String, nullable=True)
  created_at = Column(String)

  items = relationship(
      "OrderItem", back_populates="order", order_by="OrderItem.id"
  )


class OrderItem(TransactionBase):
  __tablename__ = "order_items"

  id = Column(Integer, primary_key=True, autoincrement=True)
  order_id = Column(String, ForeignKey("orders.id"))
  product_id = Column(String)
  quantity = Column(Integer)
  unit_amount = Column(Integer)
  currency = Column(String)

  order = relationship("Order", back_populates="items")


# --- Data Access Helpers ---


async def get_products(
    session: AsyncSession, product_ids: List[str]
) -> List[Product]:
  """Retrieves published products by ID in a single query.

  Args:
    session: The products database session.
    product_ids: The SKUs to look up.

  Returns:
    The matching published products, in no particular order.
  """
  if not product_ids:
    return []
  result = await session.execute(
      select(Product).where(
          Product.id.in_(product_ids), Product.published.is_(True)
      )
  )
  return list(result.scalars().all())


async def get_inventory_levels(
    session: AsyncSession, product_ids: List[str]
) -> Dict[str, int]:
  """Retrieves inventory quantities for several products in a single query."""
  if not product_ids:
    return {}
  result = await session.execute(
      select(Inventory.product_id, Inventory.quantity).where(
          Inventory.product_id.in_(product_ids)
      )
  )
  return {product_id: quantity for product_id, quantity in result.all()}


async def get_inventory(
    session: AsyncSession, product_id: str
) -> Optional[int]:
  """Retrieves the inventory quantity for a product."""
  result = await session.execute(
      select(Inventory.quantity).where(Inventory.product_id == product_id)
  )
  return result.scalar_one_or_none()


async def decrement_stock(
    session: AsyncSession, product_id: str, quantity: int
) -> bool:
  """Atomically decrements inventory if sufficient stock exists."""
  stmt = (
      update(Inventory)
      .where(Inventory.product_id == product_id)
      .where(Inventory.quantity >= quantity)
      .values(quantity=Inventory.quantity - quantity)
  )
  result = await session.execute(stmt)
  return result.rowcount > 0


async def insert_checkout(
    session: AsyncSession,
    checkout_id: str,
    status: str,
    checkout_obj: Dict[str, Any],
) -> None:
  """Adds a new checkout session row."""
  session.add(
      CheckoutSession(
          id=checkout_id,
          status=status,
          data=checkout_obj,
          created_at=checkout_obj["created_at"],
          updated_at=checkout_obj["updated_at"],
      )
  )


async def save_checkout(
    session: AsyncSession,
    checkout_id: str,
    status: str,
    checkout_obj: Dict[str, Any],
) -> bool:
  """Overwrites an existing checkout session.

  Returns:
    False if no checkout with that ID exists.
  """
  existing = await session.get(CheckoutSession, checkout_id)
  if not existing:
    return False
  existing.status = status
  existing.data = checkout_obj
  existing.updated_at = checkout_obj["updated_at"]
  return True


async def get_checkout_session(
    session: AsyncSession, checkout_id: str
) -> Optional[Dict[str, Any]]:
  """Retrieves a checkout session by ID."""
  result = await session.get(CheckoutSession, checkout_id)
  if result:
    return result.data
  return None


async def delete_stale_checkouts(
    session: AsyncSession, updated_before: str
) -> int:
  """Deletes non-completed checkout sessions last updated before a cutoff.

  Args:
    session: The transactions database session.
    updated_before: ISO-8601 UTC timestamp; older sessions are removed.

  Returns:
    The number of deleted sessions.
  """
  result = await session.execute(
      delete(CheckoutSession)
      .where(CheckoutSession.updated_at < updated_before)
      .where(CheckoutSession.status != "completed")
  )
  return result.rowcount


async def save_order(
    session: AsyncSession, order: Order, items: List[OrderItem]
) -> None:
  """Adds an order and its line items."""
  session.add(order)
  for item in items:
    item.order_id = order.id
  session.add_all(items)


async def get_order(session: AsyncSession, order_id: str) -> Optional[Order]:
  """Retrieves an order by ID, with its items loaded."""
  result = await session.execute(
      select(Order)
      .where(Order.id == order_id)
      .options(selectinload(Order.items))
  )
  return result.scalar_one_or_none()
