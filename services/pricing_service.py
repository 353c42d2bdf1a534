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

"""Pricing service turning a cart request into priced line items and totals.

Pricing is a pure calculation over one catalog snapshot: every SKU in the
cart is resolved in a single batched catalog call, then line items, the
shipping menu, VAT and the grand total are derived from that snapshot. The
service never writes anything, so repeating a calculation with the same
inputs and an unchanged catalog yields the same result.

Rules:
- Unknown SKUs are dropped and reported in `messages`.
- Quantities above available stock are clamped down to the stock level
  (possibly zero) and reported in `messages`.
- Duplicate SKUs collapse into one line; the last requested quantity wins.
- VAT is `round(subtotal * VAT_RATE)`, rounding half away from zero.
- Every line carries `VAT_RATE` as its `tax_rate`, the rate the VAT total
  is charged at.
- Shipping comes from the destination country's menu; see
  `FulfillmentService`.
"""

import decimal
import logging
from typing import Dict, List, Optional, Sequence

import config
from models import CartCalculation
from models import LineItemRequest
from models import PricedLineItem
from models import ShippingAddress
from services.catalog_service import CatalogLookup
from services.fulfillment_service import FulfillmentService

logger = logging.getLogger(__name__)


def calculate_tax(amount: int, rate: float) -> int:
  """Returns the tax on `amount` minor units, rounded half away from zero."""
  tax = decimal.Decimal(amount) * decimal.Decimal(str(rate))
  return int(tax.quantize(decimal.Decimal(1), rounding=decimal.ROUND_HALF_UP))


def merge_line_items(line_items: Sequence[LineItemRequest]) -> Dict[str, int]:
  """Collapses requests into SKU -> quantity, keeping first-seen order."""
  merged: Dict[str, int] = {}
  for line_item in line_items:
    merged[line_item.sku] = line_item.quantity
  return merged


class PricingService:
  """Service computing cart totals against the catalog."""

  def __init__(
      self,
      catalog: CatalogLookup,
      fulfillment_service: FulfillmentService,
  ):
    self.catalog = catalog
    self.fulfillment_service = fulfillment_service

  async def calculate(
      self,
      line_items: Sequence[LineItemRequest],
      address: Optional[ShippingAddress] = None,
      selected_shipping_id: Optional[str] = None,
  ) -> CartCalculation:
    """Prices a cart request.

    Args:
      line_items: The requested SKUs and quantities.
      address: Optional destination, used to pick the shipping menu.
      selected_shipping_id: Optional shipping option chosen by the buyer.

    Returns:
      The priced cart. Missing products and stock shortfalls are reported
      in `messages` rather than raised.
    """
    requested = merge_line_items(line_items)
    products = await self.catalog.resolve(list(requested))

    messages: List[str] = []
    items: List[PricedLineItem] = []
    for sku, quantity in requested.items():
      product = products.get(sku)
      if not product:
        logger.warning("Product %s not found in catalog", sku)
        messages.append(f"Product {sku} not found")
        continue

      if product.stock < quantity:
        logger.warning(
            "Clamping %s from %d to available stock %d",
            sku,
            quantity,
            product.stock,
        )
        messages.append(
            f"Insufficient stock for {product.name}. Available:"
            f" {product.stock}"
        )
        quantity = max(product.stock, 0)

      items.append(
          PricedLineItem(
              sku=product.sku,
              name=product.name,
              unit_price=product.unit_price,
              quantity=quantity,
              tax_rate=config.VAT_RATE,
          )
      )

    return self._summarize(items, address, selected_shipping_id, messages)

  def reprice(
      self,
      items: Sequence[PricedLineItem],
      address: Optional[ShippingAddress] = None,
      selected_shipping_id: Optional[str] = None,
      messages: Optional[Sequence[str]] = None,
  ) -> CartCalculation:
    """Refreshes shipping, VAT and totals for already priced items.

    Used when only the shipping address or option changes: the items keep
    their prices and quantities and the catalog is not consulted.
    """
    return self._summarize(
        [item.model_copy() for item in items],
        address,
        selected_shipping_id,
        list(messages or []),
    )

  def _summarize(
      self,
      items: List[PricedLineItem],
      address: Optional[ShippingAddress],
      selected_shipping_id: Optional[str],
      messages: List[str],
  ) -> CartCalculation:
    subtotal = sum(item.unit_price * item.quantity for item in items)

    options = self.fulfillment_service.calculate_options(address)
    selected = self.fulfillment_service.select_option(
        options, selected_shipping_id
    )
    shipping_amount = selected.amount if selected else 0

    tax_amount = calculate_tax(subtotal, config.VAT_RATE)

    return CartCalculation(
        items=items,
        shipping_options=options,
        selected_shipping=selected.id if selected else None,
        subtotal=subtotal,
        shipping_amount=shipping_amount,
        tax_amount=tax_amount,
        grand_total=subtotal + shipping_amount + tax_amount,
        messages=messages,
    )
