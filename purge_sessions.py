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

"""Housekeeping script that deletes stale checkout sessions.

Sessions that were never completed and have not been updated within
--max_age_hours are removed from the transactions database. Completed
sessions are kept.

Usage:
  python purge_sessions.py --transactions_db_path=... [--max_age_hours=24]
"""

import asyncio
import datetime
import logging
import sys
from absl import app as absl_app
from absl import flags
import db
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.orm import sessionmaker

FLAGS = flags.FLAGS
flags.DEFINE_string("transactions_db_path", None, "Path to transactions DB")
flags.DEFINE_integer(
    "max_age_hours", 24, "Delete open sessions idle for longer than this"
)
flags.DEFINE_bool("dry_run", False, "Only report the cutoff, delete nothing")

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def cutoff_timestamp(max_age_hours: int) -> str:
  now = datetime.datetime.now(datetime.timezone.utc)
  return (now - datetime.timedelta(hours=max_age_hours)).isoformat()


async def purge_sessions() -> int:
  """Deletes stale sessions and returns how many were removed."""
  if not FLAGS.transactions_db_path:
    print("Error: --transactions_db_path is required.")
    sys.exit(1)

  cutoff = cutoff_timestamp(FLAGS.max_age_hours)
  logger.info("Purging open checkout sessions idle since before %s", cutoff)
  if FLAGS.dry_run:
    return 0

  db_url = f"sqlite+aiosqlite:///{FLAGS.transactions_db_path}"
  engine = create_async_engine(db_url, echo=False)
  session_factory = sessionmaker(
      engine, expire_on_commit=False, class_=AsyncSession
  )

  try:
    async with session_factory() as session:
      deleted = await db.delete_stale_checkouts(session, cutoff)
      await session.commit()
  finally:
    await engine.dispose()

  logger.info("Deleted %d stale checkout sessions", deleted)
  return deleted


def main(argv):
  """Main entry point for the purge script."""
  del argv
  asyncio.run(purge_sessions())


if __name__ == "__main__":
  absl_app.run(main)
