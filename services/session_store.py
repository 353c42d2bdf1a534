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

"""Durable keyed storage for checkout session records.

The store is a passive ledger: it holds no business rules. Writes replace the
stored record wholesale (last write wins); there is no version check.
"""

import datetime
import logging
from typing import Any, Dict, Optional, Protocol

import db
from exceptions import StorageError
from models import CheckoutSession
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)


class SessionStore(Protocol):

  async def create(self, record: CheckoutSession) -> CheckoutSession:
    ...

  async def get(self, checkout_id: str) -> Optional[CheckoutSession]:
    ...

  async def update(
      self, checkout_id: str, fields: Dict[str, Any]
  ) -> Optional[CheckoutSession]:
    """Merges `fields` over the stored record; None if the id is unknown."""
    ...


class DatabaseSessionStore:
  """Session store backed by the `checkout_sessions` table.

  `update` commits the transactions DB session, so anything else staged on the
  same session (e.g. an order from `DatabaseOrderSink`) commits with it.
  """

  def __init__(self, transactions_session: AsyncSession):
    self.transactions_session = transactions_session

  async def create(self, record: CheckoutSession) -> CheckoutSession:
    try:
      await db.insert_checkout(
          self.transactions_session,
          record.id,
          record.status.value,
          record.model_dump(mode="json"),
      )
      await self.transactions_session.commit()
    except SQLAlchemyError as e:
      await self.transactions_session.rollback()
      logger.error("Failed to create checkout session %s: %s", record.id, e)
      raise StorageError(
          "Failed to create checkout session", details=str(e)
      ) from e
    return record

  async def get(self, checkout_id: str) -> Optional[CheckoutSession]:
    try:
      data = await db.get_checkout_session(
          self.transactions_session, checkout_id
      )
    except SQLAlchemyError as e:
      logger.error("Failed to read checkout session %s: %s", checkout_id, e)
      raise StorageError(
          "Failed to get checkout session", details=str(e)
      ) from e
    if data is None:
      return None
    return CheckoutSession.model_validate(data)

  async def update(
      self, checkout_id: str, fields: Dict[str, Any]
  ) -> Optional[CheckoutSession]:
    try:
      current = await db.get_checkout_session(
          self.transactions_session, checkout_id
      )
      if current is None:
        return None

      merged = CheckoutSession.model_validate(current).model_copy(
          update=fields
      )
      merged.updated_at = datetime.datetime.now(datetime.timezone.utc)
      # Round-trip through validation so merged fields are real models.
      record = CheckoutSession.model_validate(merged.model_dump())

      await db.save_checkout(
          self.transactions_session,
          checkout_id,
          record.status.value,
          record.model_dump(mode="json"),
      )
      await self.transactions_session.commit()
    except SQLAlchemyError as e:
      await self.transactions_session.rollback()
      logger.error("Failed to update checkout session %s: %s", checkout_id, e)
      raise StorageError(
          "Failed to update checkout session", details=str(e)
      ) from e
    return record
