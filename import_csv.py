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

"""Database initialization script for the checkout server.

This script imports the product catalog and inventory levels from CSV files
into the configured SQLite databases. It clears the existing 'products' and
'inventory' tables before populating them. Checkout sessions and orders are
left untouched.

Usage:
  python import_csv.py --products_db_path=... --transactions_db_path=...
  --data_dir=...
"""

import asyncio
import csv
import logging
import os
from typing import List
from absl import app as absl_app
from absl import flags
import db
from db import Inventory
from db import Product
from sqlalchemy import delete

FLAGS = flags.FLAGS
flags.DEFINE_string("products_db_path", "products.db", "Path to products DB")
flags.DEFINE_string(
    "transactions_db_path", "transactions.db", "Path to transactions DB"
)
flags.DEFINE_string(
    "data_dir",
    os.path.join(os.path.dirname(os.path.abspath(__file__)), "data"),
    "Directory containing products.csv and inventory.csv",
)

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def parse_bool(value: str) -> bool:
  return value.strip().lower() in ("1", "true", "yes")


def read_products(path: str) -> List[Product]:
  """Reads products.csv (id,name,unit_price,currency,published)."""
  with open(path, "r", encoding="utf-8") as f:
    return [
        Product(
            id=row["id"],
            name=row["name"],
            unit_price=int(row["unit_price"]),
            currency=row.get("currency") or "NOK",
            published=parse_bool(row.get("published") or "true"),
        )
        for row in csv.DictReader(f)
    ]


def read_inventory(path: str) -> List[Inventory]:
  """Reads inventory.csv (product_id,quantity)."""
  with open(path, "r", encoding="utf-8") as f:
    return [
        Inventory(product_id=row["product_id"], quantity=int(row["quantity"]))
        for row in csv.DictReader(f)
    ]


async def import_csv_data() -> None:
  """Reads CSV files and populates the database."""
  data_dir = FLAGS.data_dir
  # Ensure tables exist
  await db.manager.init_dbs(FLAGS.products_db_path, FLAGS.transactions_db_path)

  try:
    async with db.manager.products_session_factory() as session:
      logger.info("Clearing existing products...")
      await session.execute(delete(Product))

      logger.info("Importing Products from CSV...")
      products = read_products(os.path.join(data_dir, "products.csv"))
      session.add_all(products)
      await session.commit()
      logger.info("Imported %d products", len(products))

    async with db.manager.transactions_session_factory() as session:
      logger.info("Clearing existing inventory...")
      await session.execute(delete(Inventory))

      logger.info("Importing Inventory from CSV...")
      inventory = read_inventory(os.path.join(data_dir, "inventory.csv"))
      session.add_all(inventory)
      await session.commit()
      logger.info("Imported %d inventory rows", len(inventory))

    logger.info("Database populated from CSVs.")
  finally:
    await db.manager.close()


def main(argv) -> None:
  """Main entry point for the CSV import script."""
  del argv
  asyncio.run(import_csv_data())


if __name__ == "__main__":
  absl_app.run(main)
