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

"""Checkout service for managing the lifecycle of checkout sessions.

This module provides the `CheckoutService` class, which owns every state
transition of a checkout session: created -> updated* -> completed. It
orchestrates the pricing service, the session store, the payment delegate and
the order sink, and never touches storage directly.

Key responsibilities include:
- Validating requests before any collaborator is called.
- Pricing carts and replacing all derived monetary fields wholesale on every
  mutation, so `grand_total == subtotal + shipping_amount + tax_amount` and
  `subtotal == sum(unit_price * quantity)` always hold.
- Rejecting any mutation of a completed session.
- Completing a session: payment first, then the order, then the terminal
  status. A failure at any step leaves the stored session untouched.

Concurrent mutations of the same session are last-write-wins. The
idempotency key is stored on the session but not enforced.
"""

import datetime
import logging
from typing import Any, Dict, Optional, Sequence
import uuid

import config
from enums import CheckoutStatus
from enums import OrderStatus
from exceptions import ConflictError
from exceptions import NotFoundError
from exceptions import ValidationError
import httpx
from models import CartCalculation
from models import CheckoutSession
from models import CompleteCheckoutRequest
from models import CompleteCheckoutResponse
from models import CreateCheckoutRequest
from models import LineItemRequest
from models import NewOrder
from models import Order
from models import OrderItem
from models import Totals
from models import UpdateCheckoutRequest
from services.order_sink import OrderSink
from services.payment_service import PaymentDelegate
from services.pricing_service import PricingService
from services.session_store import SessionStore

logger = logging.getLogger(__name__)


def _validate_line_items(items: Optional[Sequence[LineItemRequest]]) -> None:
  if not items:
    raise ValidationError("Items array is required and must not be empty")
  for item in items:
    if not item.sku or not item.sku.strip():
      raise ValidationError("Each item must have a valid sku string")
    if item.quantity <= 0:
      raise ValidationError("Each item must have a positive quantity number")


def _calculation_fields(calculation: CartCalculation) -> Dict[str, Any]:
  """The derived fields a pricing pass replaces on the session."""
  return {
      "items": calculation.items,
      "shipping_options": calculation.shipping_options,
      "selected_shipping": calculation.selected_shipping,
      "subtotal": calculation.subtotal,
      "shipping_amount": calculation.shipping_amount,
      "tax_amount": calculation.tax_amount,
      "grand_total": calculation.grand_total,
      "messages": calculation.messages,
  }


def session_totals(checkout: CheckoutSession) -> Totals:
  return Totals(
      subtotal=checkout.subtotal,
      shipping=checkout.shipping_amount,
      vat=checkout.tax_amount,
      grand_total=checkout.grand_total,
  )


class CheckoutService:
  """Service for managing checkout sessions and orders."""

  def __init__(
      self,
      pricing_service: PricingService,
      session_store: SessionStore,
      order_sink: OrderSink,
      payment_delegate: PaymentDelegate,
      base_url: str,
      webhook_url: Optional[str] = None,
  ):
    self.pricing_service = pricing_service
    self.session_store = session_store
    self.order_sink = order_sink
    self.payment_delegate = payment_delegate
    self.base_url = base_url.rstrip("/")
    self.webhook_url = webhook_url

  async def create_checkout(
      self, checkout_req: CreateCheckoutRequest
  ) -> CheckoutSession:
    """Prices the requested items and persists a new session."""
    _validate_line_items(checkout_req.items)
    if not checkout_req.currency:
      raise ValidationError("Currency is required")
    if checkout_req.currency != config.SUPPORTED_CURRENCY:
      raise ValidationError(
          f"Only {config.SUPPORTED_CURRENCY} currency is supported"
      )

    calculation = await self.pricing_service.calculate(
        checkout_req.items, checkout_req.shipping_address
    )

    now = datetime.datetime.now(datetime.timezone.utc)
    checkout = CheckoutSession(
        id=f"{config.CHECKOUT_SESSION_ID_PREFIX}{uuid.uuid4().hex}",
        status=CheckoutStatus.CREATED,
        shipping_address=checkout_req.shipping_address,
        currency=config.SUPPORTED_CURRENCY,
        tax_rate=config.VAT_RATE,
        idempotency_key=checkout_req.idempotency_key or "",
        created_at=now,
        updated_at=now,
        **_calculation_fields(calculation),
    )
    checkout = await self.session_store.create(checkout)
    logger.info(
        "Created checkout session %s (grand total %d)",
        checkout.id,
        checkout.grand_total,
    )
    return checkout

  async def get_checkout(self, checkout_id: str) -> CheckoutSession:
    """Retrieves a checkout session."""
    return await self._get_and_validate_checkout(checkout_id)

  async def update_checkout(
      self,
      checkout_id: str,
      checkout_req: UpdateCheckoutRequest,
  ) -> CheckoutSession:
    """Applies items, shipping option and/or address changes to a session.

    New items trigger a full pricing pass against the catalog. Address or
    option changes alone keep the priced items and refresh shipping, VAT and
    totals.
    """
    if (
        checkout_req.items is None
        and not checkout_req.shipping_option
        and checkout_req.shipping_address is None
    ):
      raise ValidationError(
          "At least one update field (items, shipping_option, or"
          " shipping_address) is required"
      )
    if checkout_req.items is not None:
      _validate_line_items(checkout_req.items)

    logger.info("Updating checkout session %s", checkout_id)
    if checkout_req.idempotency_key:
      # Advisory only, as on completion.
      logger.info(
          "Update of %s carries idempotency key %s",
          checkout_id,
          checkout_req.idempotency_key,
      )
    existing = await self._get_and_validate_checkout(checkout_id)
    self._ensure_modifiable(existing, "update")

    address = checkout_req.shipping_address or existing.shipping_address
    shipping_option = (
        checkout_req.shipping_option or existing.selected_shipping
    )

    if checkout_req.items is not None:
      calculation = await self.pricing_service.calculate(
          checkout_req.items, address, shipping_option
      )
    else:
      calculation = self.pricing_service.reprice(
          existing.items, address, shipping_option, existing.messages
      )

    fields = _calculation_fields(calculation)
    fields["status"] = CheckoutStatus.UPDATED
    fields["shipping_address"] = address

    updated = await self.session_store.update(checkout_id, fields)
    if updated is None:
      raise NotFoundError("Checkout session not found")
    return updated

  async def complete_checkout(
      self,
      checkout_id: str,
      complete_req: CompleteCheckoutRequest,
  ) -> CompleteCheckoutResponse:
    """Takes payment, records the order and marks the session completed."""
    logger.info("Completing checkout session %s", checkout_id)
    if complete_req.idempotency_key:
      # Advisory only: repeated completions are not deduplicated.
      logger.info(
          "Completion of %s carries idempotency key %s",
          checkout_id,
          complete_req.idempotency_key,
      )

    checkout = await self._get_and_validate_checkout(checkout_id)
    self._ensure_modifiable(checkout, "complete")

    purchasable = [item for item in checkout.items if item.quantity > 0]
    if not purchasable:
      raise ValidationError(
          "Checkout session has no items available for purchase"
      )

    totals = session_totals(checkout)
    metadata = {
        "checkout_session_id": checkout.id,
        "items_count": str(len(purchasable)),
    }

    payment_url = None
    if complete_req.payment_token:
      receipt = await self.payment_delegate.confirm(
          complete_req.payment_token,
          checkout.grand_total,
          checkout.currency,
          metadata,
      )
      payment_reference = receipt.payment_id
      order_status = OrderStatus.PAID
    else:
      hosted = await self.payment_delegate.create_hosted_session(
          purchasable,
          totals,
          checkout.currency,
          metadata,
          success_url=(
              f"{self.base_url}/return?checkout_session_id={checkout.id}"
          ),
          cancel_url=f"{self.base_url}/checkout?canceled=true",
      )
      payment_reference = hosted.session_id
      payment_url = hosted.url
      order_status = OrderStatus.PENDING_PAYMENT

    order = await self.order_sink.persist(
        NewOrder(
            checkout_id=checkout.id,
            status=order_status,
            customer_email=complete_req.email or config.DEFAULT_CUSTOMER_EMAIL,
            customer_name=complete_req.name,
            total_amount=checkout.grand_total,
            currency=checkout.currency,
            shipping_address=checkout.shipping_address,
            payment_reference=payment_reference,
        ),
        [
            OrderItem(
                sku=item.sku,
                quantity=item.quantity,
                unit_price=item.unit_price,
                currency=checkout.currency,
            )
            for item in purchasable
        ],
    )

    completed = await self.session_store.update(
        checkout_id, {"status": CheckoutStatus.COMPLETED}
    )
    if completed is None:
      raise NotFoundError("Checkout session not found")
    logger.info(
        "Checkout session %s completed as order %s", checkout_id, order.id
    )

    await self._notify_webhook(order, "order.created")

    return CompleteCheckoutResponse(
        order_id=order.id,
        status=CheckoutStatus.COMPLETED,
        total=totals,
        currency=checkout.currency,
        payment_url=payment_url,
    )

  async def get_order(self, order_id: str) -> Order:
    """Retrieves an order."""
    order = await self.order_sink.get(order_id)
    if order is None:
      raise NotFoundError("Order not found")
    return order

  async def _notify_webhook(self, order: Order, event_type: str) -> None:
    """Notifies the configured webhook of an order event."""
    if not self.webhook_url:
      return

    payload = {
        "event_type": event_type,
        "checkout_id": order.checkout_id,
        "order": order.model_dump(mode="json"),
    }

    try:
      async with httpx.AsyncClient() as client:
        response = await client.post(self.webhook_url, json=payload, timeout=5.0)
        response.raise_for_status()
    except (httpx.HTTPError, httpx.InvalidURL) as e:
      logger.error("Failed to notify webhook at %s: %s", self.webhook_url, e)

  async def _get_and_validate_checkout(
      self, checkout_id: str
  ) -> CheckoutSession:
    """Retrieves a checkout session and validates its existence."""
    checkout = await self.session_store.get(checkout_id)
    if checkout is None:
      raise NotFoundError("Checkout session not found")
    return checkout

  def _ensure_modifiable(self, checkout: CheckoutSession, action: str) -> None:
    """Ensures that the checkout is in a state that allows modification."""
    if checkout.status == CheckoutStatus.COMPLETED:
      raise ConflictError(
          f"Cannot {action} checkout session: already completed"
      )
