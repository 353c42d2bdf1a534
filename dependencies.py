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

"""FastAPI dependencies for the checkout server.

This module contains dependency injection logic for FastAPI endpoints,
including:
- Database session management (Products and Transactions DBs).
- Collaborator adapters (catalog lookup, session store, order sink, payment
  delegate), each overridable in tests.
- Service instantiation (PricingService, CheckoutService).
"""

from typing import AsyncGenerator

import config
import db
from exceptions import UpstreamError
from fastapi import Depends
from fastapi import Request
from services.catalog_service import CatalogLookup
from services.catalog_service import DatabaseCatalog
from services.checkout_service import CheckoutService
from services.fulfillment_service import FulfillmentService
from services.order_sink import DatabaseOrderSink
from services.order_sink import OrderSink
from services.payment_service import MockPaymentDelegate
from services.payment_service import PaymentDelegate
from services.payment_service import StripePaymentDelegate
from services.pricing_service import PricingService
from services.session_store import DatabaseSessionStore
from services.session_store import SessionStore
from sqlalchemy.ext.asyncio import AsyncSession


async def get_products_db() -> AsyncGenerator[AsyncSession, None]:
  """Dependency provider for Products DB session."""
  async with db.manager.products_session_factory() as session:
    yield session


async def get_transactions_db() -> AsyncGenerator[AsyncSession, None]:
  """Dependency provider for Transactions DB session."""
  async with db.manager.transactions_session_factory() as session:
    yield session


def get_fulfillment_service() -> FulfillmentService:
  """Dependency provider for FulfillmentService."""
  return FulfillmentService()


def get_catalog(
    products_session: AsyncSession = Depends(get_products_db),
    transactions_session: AsyncSession = Depends(get_transactions_db),
) -> CatalogLookup:
  """Dependency provider for the catalog lookup."""
  return DatabaseCatalog(products_session, transactions_session)


def get_session_store(
    transactions_session: AsyncSession = Depends(get_transactions_db),
) -> SessionStore:
  """Dependency provider for the session store."""
  return DatabaseSessionStore(transactions_session)


def get_order_sink(
    transactions_session: AsyncSession = Depends(get_transactions_db),
) -> OrderSink:
  """Dependency provider for the order sink."""
  return DatabaseOrderSink(transactions_session)


def get_payment_delegate(request: Request) -> PaymentDelegate:
  """Dependency provider for the configured payment delegate."""
  if config.flag_value("payment_delegate", "mock") == "stripe":
    api_key = config.flag_value("stripe_api_key")
    if not api_key:
      raise UpstreamError(
          "Payment provider not configured",
          details="--stripe_api_key is required for the stripe delegate",
      )
    return StripePaymentDelegate(api_key)
  return MockPaymentDelegate(str(request.base_url))


def get_pricing_service(
    catalog: CatalogLookup = Depends(get_catalog),
    fulfillment_service: FulfillmentService = Depends(get_fulfillment_service),
) -> PricingService:
  """Dependency provider for PricingService."""
  return PricingService(catalog, fulfillment_service)


def get_checkout_service(
    request: Request,
    pricing_service: PricingService = Depends(get_pricing_service),
    session_store: SessionStore = Depends(get_session_store),
    order_sink: OrderSink = Depends(get_order_sink),
    payment_delegate: PaymentDelegate = Depends(get_payment_delegate),
) -> CheckoutService:
  """Dependency provider for CheckoutService."""
  return CheckoutService(
      pricing_service,
      session_store,
      order_sink,
      payment_delegate,
      str(request.base_url),
      webhook_url=config.flag_value("order_webhook_url"),
  )
