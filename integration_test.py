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

"""Integration tests for the checkout server."""

import asyncio
import os
import shutil
import tempfile
from typing import Any, AsyncGenerator, Dict, List, Optional
from unittest import mock

from absl import flags
from absl.testing import absltest
from absl.testing import flagsaver
import db
import dependencies
from fastapi.testclient import TestClient
from server import app
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import NullPool

FLAGS = flags.FLAGS

NO_ADDRESS = {"postal_code": "0150", "country": "NO"}


class IntegrationTest(absltest.TestCase):
  """Integration tests for the checkout server application."""

  def setUp(self) -> None:
    """Sets up the test environment, including temporary DBs and dependencies."""
    super().setUp()
    # Create a temporary directory for test databases
    self.test_dir = tempfile.mkdtemp()
    self.products_db = os.path.join(self.test_dir, "test_products.db")
    self.transactions_db = os.path.join(self.test_dir, "test_transactions.db")

    # Initialize local engines and session makers. The TestClient runs the
    # app on its own event loop, so connections are not pooled across loops.
    prod_url = f"sqlite+aiosqlite:///{self.products_db}"
    self.products_engine = create_async_engine(
        prod_url, echo=False, poolclass=NullPool
    )
    self.products_session_factory = sessionmaker(
        self.products_engine, expire_on_commit=False, class_=AsyncSession
    )

    trans_url = f"sqlite+aiosqlite:///{self.transactions_db}"
    self.transactions_engine = create_async_engine(
        trans_url, echo=False, poolclass=NullPool
    )
    self.transactions_session_factory = sessionmaker(
        self.transactions_engine, expire_on_commit=False, class_=AsyncSession
    )

    # Initialize DB schemas locally
    async def init_schemas() -> None:
      async with self.products_engine.begin() as conn:
        await conn.run_sync(db.ProductBase.metadata.create_all)
      async with self.transactions_engine.begin() as conn:
        await conn.run_sync(db.TransactionBase.metadata.create_all)

    asyncio.run(init_schemas())

    # Define dependency overrides
    async def override_get_products_db() -> AsyncGenerator[AsyncSession, None]:
      async with self.products_session_factory() as session:
        yield session

    async def override_get_transactions_db() -> (
        AsyncGenerator[AsyncSession, None]
    ):
      async with self.transactions_session_factory() as session:
        yield session

    # Apply overrides
    app.dependency_overrides[dependencies.get_products_db] = (
        override_get_products_db
    )
    app.dependency_overrides[dependencies.get_transactions_db] = (
        override_get_transactions_db
    )

    # Initialize Client
    self.client = TestClient(app)

    self._seed_data()

  def tearDown(self) -> None:
    """Cleans up the test environment."""
    # Clear overrides
    app.dependency_overrides.clear()

    # Dispose engines
    async def dispose_engines() -> None:
      await self.products_engine.dispose()
      await self.transactions_engine.dispose()

    asyncio.run(dispose_engines())

    shutil.rmtree(self.test_dir)
    super().tearDown()

  def _seed_data(self) -> None:
    """Seeds the test databases with products and inventory."""

    async def seed() -> None:
      async with self.products_session_factory() as session:
        session.add_all([
            db.Product(
                id="A", name="Product A", unit_price=10000, currency="NOK"
            ),
            db.Product(
                id="B", name="Product B", unit_price=5000, currency="NOK"
            ),
            db.Product(
                id="HIDDEN",
                name="Hidden Product",
                unit_price=100,
                currency="NOK",
                published=False,
            ),
        ])
        await session.commit()
      async with self.transactions_session_factory() as session:
        session.add_all([
            db.Inventory(product_id="A", quantity=10),
            db.Inventory(product_id="B", quantity=2),
            db.Inventory(product_id="HIDDEN", quantity=10),
        ])
        await session.commit()

    asyncio.run(seed())

  def _stock_of(self, product_id: str) -> Optional[int]:
    async def read() -> Optional[int]:
      async with self.transactions_session_factory() as session:
        return await db.get_inventory(session, product_id)

    return asyncio.run(read())

  def _create(
      self,
      items: Optional[List[Dict[str, Any]]] = None,
      address: Optional[Dict[str, str]] = None,
  ) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "items": items or [{"sku": "A", "quantity": 1}],
        "currency": "NOK",
    }
    if address is not None:
      payload["shipping_address"] = address
    response = self.client.post("/checkout_sessions", json=payload)
    self.assertEqual(response.status_code, 201, response.text)
    return response.json()

  def _assert_totals_consistent(self, checkout: Dict[str, Any]) -> None:
    self.assertEqual(
        checkout["subtotal"],
        sum(i["unit_price"] * i["quantity"] for i in checkout["items"]),
    )
    self.assertEqual(
        checkout["grand_total"],
        checkout["subtotal"]
        + checkout["shipping_amount"]
        + checkout["tax_amount"],
    )

  def test_create_prices_cart_for_norway(self) -> None:
    with self.client:
      checkout = self._create(address=NO_ADDRESS)

      self.assertTrue(checkout["id"].startswith("cs_"))
      self.assertEqual(checkout["status"], "created")
      self.assertEqual(checkout["currency"], "NOK")
      self.assertEqual(checkout["subtotal"], 10000)
      self.assertEqual(checkout["shipping_amount"], 4900)
      self.assertEqual(checkout["tax_amount"], 2500)
      self.assertEqual(checkout["grand_total"], 17400)
      self.assertEqual(checkout["selected_shipping"], "standard")
      self.assertEqual(
          [o["id"] for o in checkout["shipping_options"]],
          ["standard", "express"],
      )
      self.assertEqual(checkout["items"][0]["name"], "Product A")
      self.assertEqual(checkout["items"][0]["tax_rate"], 0.25)
      self.assertEmpty(checkout["messages"])

  def test_create_without_address_has_no_shipping(self) -> None:
    with self.client:
      checkout = self._create()

      self.assertEmpty(checkout["shipping_options"])
      self.assertIsNone(checkout["selected_shipping"])
      self.assertEqual(checkout["shipping_amount"], 0)
      self.assertEqual(checkout["grand_total"], 12500)

  def test_get_checkout_returns_stored_session(self) -> None:
    with self.client:
      created = self._create(address=NO_ADDRESS)

      response = self.client.get(f"/checkout_sessions/{created['id']}")

      self.assertEqual(response.status_code, 200)
      self.assertEqual(response.json(), created)

  def test_update_shipping_option_keeps_items(self) -> None:
    with self.client:
      created = self._create(address=NO_ADDRESS)

      response = self.client.post(
          f"/checkout_sessions/{created['id']}",
          json={"shipping_option": "express"},
      )

      self.assertEqual(response.status_code, 200, response.text)
      updated = response.json()
      self.assertEqual(updated["status"], "updated")
      self.assertEqual(updated["items"], created["items"])
      self.assertEqual(updated["selected_shipping"], "express")
      self.assertEqual(updated["shipping_amount"], 9900)
      self.assertEqual(updated["grand_total"], 22400)
      self.assertEqual(updated["created_at"], created["created_at"])

  def test_update_items_replaces_cart(self) -> None:
    with self.client:
      created = self._create(address=NO_ADDRESS)
      self.client.post(
          f"/checkout_sessions/{created['id']}",
          json={"shipping_option": "express"},
      )

      response = self.client.post(
          f"/checkout_sessions/{created['id']}",
          json={
              "items": [
                  {"sku": "A", "quantity": 3},
                  {"sku": "B", "quantity": 1},
                  {"sku": "A", "quantity": 2},
              ]
          },
      )

      self.assertEqual(response.status_code, 200, response.text)
      updated = response.json()
      self.assertEqual(
          [(i["sku"], i["quantity"]) for i in updated["items"]],
          [("A", 2), ("B", 1)],
      )
      self.assertEqual(updated["subtotal"], 25000)
      # The earlier shipping choice survives an items-only update.
      self.assertEqual(updated["selected_shipping"], "express")
      self._assert_totals_consistent(updated)

  def test_update_address_to_unsupported_country_drops_shipping(self) -> None:
    with self.client:
      created = self._create(address=NO_ADDRESS)

      response = self.client.post(
          f"/checkout_sessions/{created['id']}",
          json={"shipping_address": {"postal_code": "11122", "country": "SE"}},
      )

      self.assertEqual(response.status_code, 200, response.text)
      updated = response.json()
      self.assertEqual(updated["shipping_address"]["country"], "SE")
      self.assertEmpty(updated["shipping_options"])
      self.assertEqual(updated["shipping_amount"], 0)
      self._assert_totals_consistent(updated)

  def test_unknown_shipping_option_falls_back_to_standard(self) -> None:
    with self.client:
      created = self._create(address=NO_ADDRESS)

      response = self.client.post(
          f"/checkout_sessions/{created['id']}",
          json={"shipping_option": "teleport"},
      )

      self.assertEqual(response.status_code, 200, response.text)
      self.assertEqual(response.json()["selected_shipping"], "standard")
      self.assertEqual(response.json()["shipping_amount"], 4900)

  def test_quantity_clamped_to_stock(self) -> None:
    with self.client:
      checkout = self._create(items=[{"sku": "B", "quantity": 5}])

      self.assertEqual(checkout["items"][0]["quantity"], 2)
      self.assertIn(
          "Insufficient stock for Product B. Available: 2",
          checkout["messages"],
      )
      self._assert_totals_consistent(checkout)

  def test_unknown_and_unpublished_skus_are_reported(self) -> None:
    with self.client:
      checkout = self._create(
          items=[
              {"sku": "A", "quantity": 1},
              {"sku": "NOPE", "quantity": 1},
              {"sku": "HIDDEN", "quantity": 1},
          ]
      )

      self.assertEqual([i["sku"] for i in checkout["items"]], ["A"])
      self.assertIn("Product NOPE not found", checkout["messages"])
      self.assertIn("Product HIDDEN not found", checkout["messages"])

  def test_create_validation_errors(self) -> None:
    cases = [
        ({"currency": "NOK"}, "Items array is required and must not be empty"),
        (
            {"items": [], "currency": "NOK"},
            "Items array is required and must not be empty",
        ),
        (
            {"items": [{"sku": " ", "quantity": 1}], "currency": "NOK"},
            "Each item must have a valid sku string",
        ),
        (
            {"items": [{"sku": "A", "quantity": 0}], "currency": "NOK"},
            "Each item must have a positive quantity number",
        ),
        ({"items": [{"sku": "A", "quantity": 1}]}, "Currency is required"),
        (
            {"items": [{"sku": "A", "quantity": 1}], "currency": "USD"},
            "Only NOK currency is supported",
        ),
    ]
    with self.client:
      for payload, message in cases:
        with self.subTest(message=message, payload=payload):
          response = self.client.post("/checkout_sessions", json=payload)
          self.assertEqual(response.status_code, 400)
          self.assertEqual(
              response.json(), {"error": message, "code": "INVALID_REQUEST"}
          )

  def test_malformed_body_is_400(self) -> None:
    with self.client:
      response = self.client.post(
          "/checkout_sessions",
          json={"items": [{"sku": "A", "quantity": "many"}], "currency": "NOK"},
      )

      self.assertEqual(response.status_code, 400)
      self.assertEqual(response.json()["code"], "INVALID_REQUEST")
      self.assertNotIn("details", response.json())

  def test_item_fields_are_not_coerced(self) -> None:
    bad_items = [
        {"sku": "A", "quantity": True},
        {"sku": "A", "quantity": "3"},
        {"sku": "A", "quantity": 1.5},
        {"sku": 7, "quantity": 1},
    ]
    with self.client:
      for item in bad_items:
        with self.subTest(item=item):
          response = self.client.post(
              "/checkout_sessions", json={"items": [item], "currency": "NOK"}
          )
          self.assertEqual(response.status_code, 400)
          self.assertEqual(response.json()["code"], "INVALID_REQUEST")

      created = self._create()
      response = self.client.post(
          f"/checkout_sessions/{created['id']}",
          json={"items": [{"sku": "A", "quantity": "3"}]},
      )
      self.assertEqual(response.status_code, 400)
      stored = self.client.get(f"/checkout_sessions/{created['id']}")
      self.assertEqual(stored.json(), created)

  def test_storage_failure_is_500_and_leaves_session(self) -> None:
    failing_save = mock.AsyncMock(
        side_effect=OperationalError("UPDATE", {}, Exception("disk I/O error"))
    )
    with self.client:
      created = self._create(address=NO_ADDRESS)

      with mock.patch.object(db, "save_checkout", failing_save):
        response = self.client.post(
            f"/checkout_sessions/{created['id']}",
            json={"shipping_option": "express"},
        )

      self.assertEqual(response.status_code, 500)
      self.assertEqual(
          response.json(),
          {
              "error": "Failed to update checkout session",
              "code": "STORAGE_ERROR",
          },
      )
      stored = self.client.get(f"/checkout_sessions/{created['id']}")
      self.assertEqual(stored.json(), created)

  def test_error_details_exposed_when_enabled(self) -> None:
    if not FLAGS.is_parsed():
      FLAGS.mark_as_parsed()
    with self.client, flagsaver.flagsaver(expose_error_details=True):
      response = self.client.post(
          "/checkout_sessions",
          json={"items": [{"sku": "A", "quantity": "many"}], "currency": "NOK"},
      )

      self.assertEqual(response.status_code, 400)
      self.assertIn("details", response.json())
      self.assertEqual(
          response.json()["details"][0]["loc"],
          ["body", "items", 0, "quantity"],
      )

  def test_update_requires_a_field(self) -> None:
    with self.client:
      created = self._create()

      response = self.client.post(
          f"/checkout_sessions/{created['id']}", json={}
      )

      self.assertEqual(response.status_code, 400)
      self.assertEqual(response.json()["code"], "INVALID_REQUEST")

  def test_update_with_empty_items_is_rejected(self) -> None:
    with self.client:
      created = self._create()

      response = self.client.post(
          f"/checkout_sessions/{created['id']}", json={"items": []}
      )

      self.assertEqual(response.status_code, 400)
      self.assertEqual(
          response.json()["error"],
          "Items array is required and must not be empty",
      )

  def test_unknown_session_is_404(self) -> None:
    with self.client:
      get_response = self.client.get("/checkout_sessions/cs_missing")
      update_response = self.client.post(
          "/checkout_sessions/cs_missing", json={"shipping_option": "express"}
      )
      complete_response = self.client.post(
          "/checkout_sessions/cs_missing/complete",
          json={"payment_token": "tok_visa"},
      )

      for response in (get_response, update_response, complete_response):
        self.assertEqual(response.status_code, 404)
        self.assertEqual(
            response.json(),
            {
                "error": "Checkout session not found",
                "code": "RESOURCE_NOT_FOUND",
            },
        )

  def test_complete_with_token_creates_paid_order(self) -> None:
    with self.client:
      created = self._create(
          items=[{"sku": "A", "quantity": 2}], address=NO_ADDRESS
      )

      response = self.client.post(
          f"/checkout_sessions/{created['id']}/complete",
          json={
              "payment_token": "tok_visa",
              "email": "kari@example.com",
              "name": "Kari Nordmann",
              "idempotency_key": "complete-1",
          },
      )

      self.assertEqual(response.status_code, 200, response.text)
      completion = response.json()
      self.assertEqual(completion["status"], "completed")
      self.assertEqual(completion["currency"], "NOK")
      self.assertEqual(
          completion["total"],
          {
              "subtotal": 20000,
              "shipping": 4900,
              "vat": 5000,
              "grand_total": 29900,
          },
      )
      self.assertIsNone(completion["payment_url"])

      session = self.client.get(f"/checkout_sessions/{created['id']}").json()
      self.assertEqual(session["status"], "completed")
      self.assertEqual(self._stock_of("A"), 8)

      order_response = self.client.get(f"/orders/{completion['order_id']}")
      self.assertEqual(order_response.status_code, 200)
      order = order_response.json()
      self.assertEqual(order["checkout_id"], created["id"])
      self.assertEqual(order["status"], "paid")
      self.assertEqual(order["customer_email"], "kari@example.com")
      self.assertEqual(order["total_amount"], 29900)
      self.assertTrue(order["payment_reference"].startswith("pi_mock_"))
      self.assertEqual(
          order["items"],
          [
              {
                  "sku": "A",
                  "quantity": 2,
                  "unit_price": 10000,
                  "currency": "NOK",
              }
          ],
      )

  def test_complete_without_token_returns_hosted_payment_url(self) -> None:
    with self.client:
      created = self._create(address=NO_ADDRESS)

      response = self.client.post(
          f"/checkout_sessions/{created['id']}/complete"
      )

      self.assertEqual(response.status_code, 200, response.text)
      completion = response.json()
      self.assertTrue(
          completion["payment_url"].startswith("http://testserver/pay/hs_mock_")
      )
      order = self.client.get(f"/orders/{completion['order_id']}").json()
      self.assertEqual(order["status"], "pending_payment")
      self.assertEqual(order["customer_email"], "checkout@agentic.com")

  def test_completed_session_is_immutable(self) -> None:
    with self.client:
      created = self._create(address=NO_ADDRESS)
      self.client.post(
          f"/checkout_sessions/{created['id']}/complete",
          json={"payment_token": "tok_visa"},
      )
      before = self.client.get(f"/checkout_sessions/{created['id']}").json()

      complete_again = self.client.post(
          f"/checkout_sessions/{created['id']}/complete",
          json={"payment_token": "tok_visa"},
      )
      update_after = self.client.post(
          f"/checkout_sessions/{created['id']}",
          json={"shipping_option": "express"},
      )

      self.assertEqual(complete_again.status_code, 400)
      self.assertEqual(
          complete_again.json(),
          {
              "error": "Cannot complete checkout session: already completed",
              "code": "CHECKOUT_COMPLETED",
          },
      )
      self.assertEqual(update_after.status_code, 400)
      self.assertEqual(
          update_after.json()["error"],
          "Cannot update checkout session: already completed",
      )
      after = self.client.get(f"/checkout_sessions/{created['id']}").json()
      self.assertEqual(after, before)
      self.assertEqual(self._stock_of("A"), 9)

  def test_declined_payment_leaves_session_untouched(self) -> None:
    with self.client:
      created = self._create(address=NO_ADDRESS)

      for token, status in (("fail_token", 402), ("fraud_token", 403)):
        with self.subTest(token=token):
          response = self.client.post(
              f"/checkout_sessions/{created['id']}/complete",
              json={"payment_token": token},
          )
          self.assertEqual(response.status_code, status)

      session = self.client.get(f"/checkout_sessions/{created['id']}").json()
      self.assertEqual(session, created)
      self.assertEqual(self._stock_of("A"), 10)

  def test_complete_fails_when_stock_ran_out(self) -> None:
    with self.client:
      created = self._create(items=[{"sku": "B", "quantity": 2}])
      other = self._create(items=[{"sku": "B", "quantity": 2}])
      self.client.post(
          f"/checkout_sessions/{other['id']}/complete",
          json={"payment_token": "tok_visa"},
      )

      response = self.client.post(
          f"/checkout_sessions/{created['id']}/complete",
          json={"payment_token": "tok_visa"},
      )

      self.assertEqual(response.status_code, 409)
      self.assertEqual(response.json()["code"], "OUT_OF_STOCK")
      session = self.client.get(f"/checkout_sessions/{created['id']}").json()
      self.assertEqual(session["status"], "created")
      self.assertEqual(self._stock_of("B"), 0)

  def test_complete_with_nothing_purchasable_is_rejected(self) -> None:
    async def empty_stock() -> None:
      async with self.transactions_session_factory() as session:
        await db.decrement_stock(session, "B", 2)
        await session.commit()

    asyncio.run(empty_stock())
    with self.client:
      created = self._create(items=[{"sku": "B", "quantity": 1}])
      self.assertEqual(created["items"][0]["quantity"], 0)

      response = self.client.post(
          f"/checkout_sessions/{created['id']}/complete",
          json={"payment_token": "tok_visa"},
      )

      self.assertEqual(response.status_code, 400)
      self.assertEqual(
          response.json()["error"],
          "Checkout session has no items available for purchase",
      )

  def test_unknown_order_is_404(self) -> None:
    with self.client:
      response = self.client.get("/orders/missing")

      self.assertEqual(response.status_code, 404)
      self.assertEqual(response.json()["error"], "Order not found")

  def test_options_preflight(self) -> None:
    with self.client:
      for path in (
          "/checkout_sessions",
          "/checkout_sessions/cs_any",
          "/checkout_sessions/cs_any/complete",
      ):
        with self.subTest(path=path):
          response = self.client.options(path)
          self.assertEqual(response.status_code, 200)
          self.assertEqual(
              response.headers["access-control-allow-origin"], "*"
          )
          self.assertIn(
              "POST", response.headers["access-control-allow-methods"]
          )

  def test_browser_preflight_handled_by_cors_middleware(self) -> None:
    with self.client:
      response = self.client.options(
          "/checkout_sessions",
          headers={
              "Origin": "https://shop.example",
              "Access-Control-Request-Method": "POST",
              "Access-Control-Request-Headers": "content-type",
          },
      )

      self.assertEqual(response.status_code, 200)
      self.assertEqual(response.headers["access-control-allow-origin"], "*")


if __name__ == "__main__":
  absltest.main()
