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

"""Order sink: persists finalized orders and takes their stock."""

import datetime
import logging
from typing import List, Optional, Protocol
import uuid

import db
from exceptions import OutOfStockError
from exceptions import UpstreamError
from models import NewOrder
from models import Order
from models import OrderItem
from models import ShippingAddress
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)


class OrderSink(Protocol):

  async def persist(self, order: NewOrder, items: List[OrderItem]) -> Order:
    ...

  async def get(self, order_id: str) -> Optional[Order]:
    ...


def order_from_row(row: db.Order) -> Order:
  """Converts an `orders` row (with items loaded) to the API model."""
  return Order(
      id=row.id,
      checkout_id=row.checkout_id,
      status=row.status,
      customer_email=row.customer_email,
      customer_name=row.customer_name,
      total_amount=row.total_amount,
      currency=row.currency,
      shipping_address=(
          ShippingAddress.model_validate(row.shipping_address)
          if row.shipping_address
          else None
      ),
      payment_reference=row.payment_reference,
      items=[
          OrderItem(
              sku=item.product_id,
              quantity=item.quantity,
              unit_price=item.unit_amount,
              currency=item.currency,
          )
          for item in row.items
      ],
      created_at=datetime.datetime.fromisoformat(row.created_at),
  )


class DatabaseOrderSink:
  """Order sink over the `orders`, `order_items` and `inventory` tables.

  `persist` stages its writes on the transactions DB session without
  committing; the caller's next commit (the session store marking the
  checkout completed) makes the order, the stock movement and the status
  change durable together. Any failure rolls the staged writes back.
  """

  def __init__(self, transactions_session: AsyncSession):
    self.transactions_session = transactions_session

  async def persist(self, order: NewOrder, items: List[OrderItem]) -> Order:
    order_id = str(uuid.uuid4())
    created_at = datetime.datetime.now(datetime.timezone.utc)
    try:
      for item in items:
        success = await db.decrement_stock(
            self.transactions_session, item.sku, item.quantity
        )
        if not success:
          await self.transactions_session.rollback()
          raise OutOfStockError(f"Item {item.sku} is out of stock")

      row = db.Order(
          id=order_id,
          checkout_id=order.checkout_id,
          status=order.status.value,
          customer_email=order.customer_email,
          customer_name=order.customer_name,
          total_amount=order.total_amount,
          currency=order.currency,
          shipping_address=(
              order.shipping_address.model_dump(mode="json")
              if order.shipping_address
              else None
          ),
          payment_reference=order.payment_reference,
          created_at=created_at.isoformat(),
      )
      await db.save_order(
          self.transactions_session,
          row,
          [
              db.OrderItem(
                  product_id=item.sku,
                  quantity=item.quantity,
                  unit_amount=item.unit_price,
                  currency=item.currency,
              )
              for item in items
          ],
      )
      await self.transactions_session.flush()
    except SQLAlchemyError as e:
      await self.transactions_session.rollback()
      logger.error(
          "Failed to persist order for checkout %s: %s", order.checkout_id, e
      )
      raise UpstreamError("Failed to create order", details=str(e)) from e

    logger.info(
        "Staged order %s for checkout %s", order_id, order.checkout_id
    )
    return Order(
        id=order_id,
        items=list(items),
        created_at=created_at,
        **order.model_dump(),
    )

  async def get(self, order_id: str) -> Optional[Order]:
    try:
      row = await db.get_order(self.transactions_session, order_id)
    except SQLAlchemyError as e:
      logger.error("Failed to read order %s: %s", order_id, e)
      raise UpstreamError("Failed to get order", details=str(e)) from e
    if row is None:
      return None
    return order_from_row(row)
