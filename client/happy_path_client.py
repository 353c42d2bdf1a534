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

"""Happy Path Client Script for the checkout server.

This script walks an agent's purchase journey end to end:
1. Creating a checkout session for a Norwegian address.
2. Switching to express shipping.
3. Changing the shipping address.
4. Completing the checkout with a delegated payment token.
5. Fetching the resulting order.

Run `import_csv.py` against the server's databases first so the default
SKUs exist.

Usage:
  python client/happy_path_client.py --server_url=http://localhost:8182
"""

import argparse
import json
import logging
import uuid
import httpx


def log_response(
    logger: logging.Logger, step: str, response: httpx.Response
) -> dict[str, object]:
  """Logs a response body and returns it decoded."""
  body = response.json()
  logger.info(
      "%s -> HTTP %d\n%s", step, response.status_code, json.dumps(body, indent=2)
  )
  return body


def main() -> None:

  parser = argparse.ArgumentParser()

  parser.add_argument(
      "--server_url",
      default="http://localhost:8182",
      help="Base URL of the checkout server",
  )

  parser.add_argument(
      "--sku",
      default="ull-genser",
      help="SKU to purchase",
  )

  parser.add_argument(
      "--payment_token",
      default="tok_visa",
      help="Delegated payment token; 'fail_token' simulates a decline.",
  )

  args = parser.parse_args()

  logging.basicConfig(
      level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s"
  )

  logger = logging.getLogger(__name__)

  client = httpx.Client(base_url=args.server_url)

  try:
    logger.info("STEP 1: Creating a new Checkout Session...")
    response = client.post(
        "/checkout_sessions",
        json={
            "items": [{"sku": args.sku, "quantity": 1}],
            "shipping_address": {"postal_code": "0150", "country": "NO"},
            "currency": "NOK",
            "idempotency_key": str(uuid.uuid4()),
        },
    )
    checkout = log_response(logger, "create", response)
    if response.status_code != 201:
      logger.error("Failed to create checkout: %s", response.text)
      return
    checkout_id = checkout["id"]
    for message in checkout["messages"]:
      logger.warning("Merchant message: %s", message)

    logger.info("STEP 2: Selecting express shipping...")
    response = client.post(
        f"/checkout_sessions/{checkout_id}",
        json={"shipping_option": "express"},
    )
    checkout = log_response(logger, "select shipping", response)
    if response.status_code != 200:
      logger.error("Failed to select shipping: %s", response.text)
      return
    logger.info("New Total: %s øre", checkout["grand_total"])

    logger.info("STEP 3: Updating the shipping address...")
    response = client.post(
        f"/checkout_sessions/{checkout_id}",
        json={"shipping_address": {"postal_code": "5003", "country": "NO"}},
    )
    checkout = log_response(logger, "update address", response)
    if response.status_code != 200:
      logger.error("Failed to update address: %s", response.text)
      return

    logger.info("STEP 4: Completing checkout...")
    response = client.post(
        f"/checkout_sessions/{checkout_id}/complete",
        json={
            "payment_token": args.payment_token,
            "email": "buyer@example.com",
            "name": "Kari Nordmann",
        },
    )
    completion = log_response(logger, "complete", response)
    if response.status_code != 200:
      logger.error("Payment failed: %s", response.text)
      return

    logger.info("STEP 5: Fetching the order...")
    response = client.get(f"/orders/{completion['order_id']}")
    log_response(logger, "get order", response)

    logger.info("Happy Path completed successfully.")

  except httpx.HTTPError:
    logger.exception("Request to %s failed:", args.server_url)

  finally:
    client.close()


if __name__ == "__main__":

  main()
