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

"""Pydantic models for the checkout server.

All monetary amounts are integers in minor currency units (øre for NOK).
The checkout session is the central aggregate; request models describe the
JSON bodies accepted by the HTTP surface, and the remaining models are the
values exchanged with the catalog, payment and order collaborators.
"""

import datetime
from typing import List, Optional

from enums import CheckoutStatus
from enums import OrderStatus
from pydantic import BaseModel
from pydantic import Field
from pydantic import StrictInt
from pydantic import StrictStr


class LineItemRequest(BaseModel):
  """A requested SKU and quantity. Input only.

  Both fields are strict: JSON booleans and numeric strings are rejected
  rather than coerced.
  """

  sku: StrictStr
  quantity: StrictInt


class ShippingAddress(BaseModel):
  """Just enough of an address to pick a tax and shipping regime."""

  postal_code: str
  country: str


class ShippingOption(BaseModel):
  id: str
  label: str
  amount: int


class PricedLineItem(BaseModel):
  sku: str
  name: str
  unit_price: int
  quantity: int
  tax_rate: float


class CatalogEntry(BaseModel):
  """A product as resolved by the catalog lookup."""

  sku: str
  name: str
  unit_price: int
  currency: str
  stock: int


class CartCalculation(BaseModel):
  """Result of one pricing pass over a cart."""

  items: List[PricedLineItem]
  shipping_options: List[ShippingOption]
  selected_shipping: Optional[str] = None
  subtotal: int
  shipping_amount: int
  tax_amount: int
  grand_total: int
  messages: List[str] = Field(default_factory=list)


class CheckoutSession(BaseModel):
  """A provisional, mutable cart-with-pricing record."""

  id: str
  status: CheckoutStatus
  items: List[PricedLineItem]
  shipping_address: Optional[ShippingAddress] = None
  shipping_options: List[ShippingOption] = Field(default_factory=list)
  selected_shipping: Optional[str] = None
  currency: str
  tax_rate: float
  subtotal: int
  shipping_amount: int
  tax_amount: int
  grand_total: int
  messages: List[str] = Field(default_factory=list)
  idempotency_key: str = ""
  created_at: datetime.datetime
  updated_at: datetime.datetime


class CreateCheckoutRequest(BaseModel):
  items: Optional[List[LineItemRequest]] = None
  shipping_address: Optional[ShippingAddress] = None
  currency: Optional[str] = None
  idempotency_key: Optional[str] = None


class UpdateCheckoutRequest(BaseModel):
  items: Optional[List[LineItemRequest]] = None
  shipping_option: Optional[str] = None
  shipping_address: Optional[ShippingAddress] = None
  idempotency_key: Optional[str] = None


class CompleteCheckoutRequest(BaseModel):
  payment_token: Optional[str] = None
  email: Optional[str] = None
  name: Optional[str] = None
  idempotency_key: Optional[str] = None


class Totals(BaseModel):
  subtotal: int
  shipping: int
  vat: int
  grand_total: int


class CompleteCheckoutResponse(BaseModel):
  order_id: str
  status: CheckoutStatus
  total: Totals
  currency: str
  payment_url: Optional[str] = None


class PaymentReceipt(BaseModel):
  """Confirmation of a delegated payment token."""

  payment_id: str
  amount: int
  currency: str


class HostedPayment(BaseModel):
  """A hosted payment page the buyer is redirected to."""

  session_id: str
  url: str


class NewOrder(BaseModel):
  """An order handed to the order sink on completion."""

  checkout_id: str
  status: OrderStatus
  customer_email: str
  customer_name: Optional[str] = None
  total_amount: int
  currency: str
  shipping_address: Optional[ShippingAddress] = None
  payment_reference: Optional[str] = None


class OrderItem(BaseModel):
  sku: str
  quantity: int
  unit_price: int
  currency: str


class Order(NewOrder):
  """A persisted order."""

  id: str
  items: List[OrderItem] = Field(default_factory=list)
  created_at: datetime.datetime
