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

"""Shared configuration and startup logic for the checkout server."""

import contextlib
from typing import Any
from absl import flags
import db
from fastapi import FastAPI

FLAGS = flags.FLAGS

SERVER_VERSION = "0.1.0"

# Single tax regime: Norwegian VAT on NOK-priced goods.
SUPPORTED_CURRENCY = "NOK"
VAT_RATE = 0.25

CHECKOUT_SESSION_ID_PREFIX = "cs_"
DEFAULT_CUSTOMER_EMAIL = "checkout@agentic.com"

# Define flags only if they haven't been defined yet (to avoid duplicates
# during tests or re-imports)
try:
  flags.DEFINE_string("products_db_path", None, "Path to products DB")
  flags.DEFINE_string("transactions_db_path", None, "Path to transactions DB")
  flags.DEFINE_integer("port", None, "Port to run the server on")
  flags.DEFINE_enum(
      "payment_delegate",
      "mock",
      ["mock", "stripe"],
      "Payment delegate used to complete checkout sessions",
  )
  flags.DEFINE_string(
      "stripe_api_key", None, "Stripe secret key for the stripe delegate"
  )
  flags.DEFINE_string(
      "order_webhook_url",
      None,
      "URL notified with an order.created event after completion",
  )
  flags.DEFINE_bool(
      "expose_error_details",
      False,
      "Include internal exception details in error responses",
  )
except flags.DuplicateFlagError:
  pass


def flag_value(name: str, default: Any = None) -> Any:
  """Returns a flag value, or `default` if flags have not been parsed.

  Test runners that do not go through `absl.app.run` never parse flags, and
  reading an unparsed flag raises.
  """
  if not FLAGS.is_parsed():
    return default
  value = FLAGS[name].value
  return default if value is None else value


@contextlib.asynccontextmanager
async def lifespan(app: FastAPI):
  """Shared lifespan manager for initializing databases."""
  del app  # Unused.
  products_path = flag_value("products_db_path")
  transactions_path = flag_value("transactions_db_path")
  # In tests the session dependencies are overridden and no paths are set.
  if products_path and transactions_path:
    await db.manager.init_dbs(products_path, transactions_path)
  yield
  await db.manager.close()
