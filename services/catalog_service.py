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

"""Catalog lookup: resolves SKUs to price, currency and available stock."""

import logging
from typing import Dict, List, Protocol

import db
from exceptions import UpstreamError
from models import CatalogEntry
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)


class CatalogLookup(Protocol):
  """Read-only, idempotent product lookup."""

  async def resolve(self, skus: List[str]) -> Dict[str, CatalogEntry]:
    """Resolves all SKUs in one batch; unknown SKUs are absent from the map."""
    ...


class DatabaseCatalog:
  """Catalog lookup over the products DB and the inventory table."""

  def __init__(
      self,
      products_session: AsyncSession,
      transactions_session: AsyncSession,
  ):
    self.products_session = products_session
    self.transactions_session = transactions_session

  async def resolve(self, skus: List[str]) -> Dict[str, CatalogEntry]:
    unique_skus = list(dict.fromkeys(skus))
    try:
      products = await db.get_products(self.products_session, unique_skus)
      stock = await db.get_inventory_levels(
          self.transactions_session, [p.id for p in products]
      )
    except SQLAlchemyError as e:
      logger.error("Catalog lookup failed for %s: %s", unique_skus, e)
      raise UpstreamError("Failed to fetch products", details=str(e)) from e

    return {
        p.id: CatalogEntry(
            sku=p.id,
            name=p.name,
            unit_price=p.unit_price,
            currency=p.currency,
            stock=stock.get(p.id, 0),
        )
        for p in products
    }
