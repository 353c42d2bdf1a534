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

"""Payment delegates used to complete checkout sessions.

Two completion strategies exist: confirming a delegated payment token
(`confirm`), or handing the buyer a hosted payment page
(`create_hosted_session`) when no token was supplied.
"""

import asyncio
import logging
from typing import Dict, List, Protocol
import uuid

from exceptions import PaymentFailedError
from exceptions import UpstreamError
from models import HostedPayment
from models import PaymentReceipt
from models import PricedLineItem
from models import Totals
import stripe

logger = logging.getLogger(__name__)


class PaymentDelegate(Protocol):

  async def confirm(
      self,
      token: str,
      amount: int,
      currency: str,
      metadata: Dict[str, str],
  ) -> PaymentReceipt:
    ...

  async def create_hosted_session(
      self,
      items: List[PricedLineItem],
      totals: Totals,
      currency: str,
      metadata: Dict[str, str],
      success_url: str,
      cancel_url: str,
  ) -> HostedPayment:
    ...


class MockPaymentDelegate:
  """Deterministic payment delegate for development and tests.

  Tokens `fail_token` and `fraud_token` are declined; any other token is
  accepted.
  """

  def __init__(self, base_url: str):
    self.base_url = base_url.rstrip("/")

  async def confirm(
      self,
      token: str,
      amount: int,
      currency: str,
      metadata: Dict[str, str],
  ) -> PaymentReceipt:
    del metadata  # Unused.
    if token == "fail_token":
      raise PaymentFailedError(
          "Payment Failed: Insufficient Funds (Mock)",
          code="INSUFFICIENT_FUNDS",
      )
    if token == "fraud_token":
      raise PaymentFailedError(
          "Payment Failed: Fraud Detected (Mock)",
          code="FRAUD_DETECTED",
          status_code=403,
      )
    logger.info("Mock payment of %d %s confirmed", amount, currency)
    return PaymentReceipt(
        payment_id=f"pi_mock_{uuid.uuid4().hex}",
        amount=amount,
        currency=currency,
    )

  async def create_hosted_session(
      self,
      items: List[PricedLineItem],
      totals: Totals,
      currency: str,
      metadata: Dict[str, str],
      success_url: str,
      cancel_url: str,
  ) -> HostedPayment:
    del items, metadata, success_url, cancel_url  # Unused.
    session_id = f"hs_mock_{uuid.uuid4().hex}"
    logger.info(
        "Mock hosted payment %s for %d %s",
        session_id,
        totals.grand_total,
        currency,
    )
    return HostedPayment(
        session_id=session_id, url=f"{self.base_url}/pay/{session_id}"
    )


class StripePaymentDelegate:
  """Payment delegate backed by Stripe PaymentIntents and Checkout Sessions.

  The Stripe client is synchronous; calls run in a worker thread.
  """

  def __init__(self, api_key: str):
    self.api_key = api_key

  async def confirm(
      self,
      token: str,
      amount: int,
      currency: str,
      metadata: Dict[str, str],
  ) -> PaymentReceipt:
    try:
      intent = await asyncio.to_thread(
          stripe.PaymentIntent.create,
          api_key=self.api_key,
          amount=amount,
          currency=currency.lower(),
          payment_method=token,
          confirm=True,
          automatic_payment_methods={
              "enabled": True,
              "allow_redirects": "never",
          },
          metadata=metadata,
      )
    except stripe.CardError as e:
      logger.warning("Stripe declined payment: %s", e.user_message)
      raise PaymentFailedError(
          f"Payment Failed: {e.user_message or 'card declined'}",
          code=(e.code or "PAYMENT_FAILED").upper(),
          details=str(e),
      ) from e
    except stripe.StripeError as e:
      logger.error("Stripe payment confirmation failed: %s", e)
      raise UpstreamError("Payment provider error", details=str(e)) from e

    if intent.status != "succeeded":
      raise PaymentFailedError(
          f"Payment not completed (status: {intent.status})",
          code="PAYMENT_INCOMPLETE",
      )
    logger.info("Stripe PaymentIntent %s succeeded", intent.id)
    return PaymentReceipt(payment_id=intent.id, amount=amount, currency=currency)

  async def create_hosted_session(
      self,
      items: List[PricedLineItem],
      totals: Totals,
      currency: str,
      metadata: Dict[str, str],
      success_url: str,
      cancel_url: str,
  ) -> HostedPayment:
    stripe_currency = currency.lower()

    def price_line(name: str, unit_amount: int, quantity: int):
      return {
          "price_data": {
              "currency": stripe_currency,
              "product_data": {"name": name},
              "unit_amount": unit_amount,
          },
          "quantity": quantity,
      }

    line_items = [
        price_line(item.name, item.unit_price, item.quantity)
        for item in items
        if item.quantity > 0
    ]
    # Shipping and VAT are charged as their own lines so the hosted page
    # collects exactly the session's grand total.
    if totals.shipping > 0:
      line_items.append(price_line("Shipping", totals.shipping, 1))
    if totals.vat > 0:
      line_items.append(price_line("VAT", totals.vat, 1))

    try:
      session = await asyncio.to_thread(
          stripe.checkout.Session.create,
          api_key=self.api_key,
          mode="payment",
          payment_method_types=["card"],
          line_items=line_items,
          success_url=success_url,
          cancel_url=cancel_url,
          metadata=metadata,
      )
    except stripe.StripeError as e:
      logger.error("Stripe checkout session creation failed: %s", e)
      raise UpstreamError("Payment provider error", details=str(e)) from e

    logger.info("Created Stripe checkout session %s", session.id)
    return HostedPayment(session_id=session.id, url=session.url)
