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

"""Agentic Commerce Checkout Server (Python/FastAPI)."""

import logging
import sys
from typing import Any, Dict, Sequence
from absl import app as absl_app
import config
from exceptions import CheckoutError
from fastapi import FastAPI
from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from routes.checkout import router as checkout_router
from routes.order import router as order_router
import uvicorn

# --- App Setup ---

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Agentic Commerce Checkout Service",
    version=config.SERVER_VERSION,
    description="Checkout sessions for agents and storefront checkout pages",
    lifespan=config.lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
)


def error_body(
    message: str, code: str, details: Any = None
) -> Dict[str, Any]:
  """Builds the error payload; details only when explicitly enabled."""
  content: Dict[str, Any] = {"error": message, "code": code}
  if details is not None and config.flag_value("expose_error_details", False):
    content["details"] = details
  return content


@app.exception_handler(CheckoutError)
async def checkout_exception_handler(request: Request, exc: CheckoutError):
  """Handles checkout exceptions and converts them to JSON responses."""
  del request  # Unused.
  if exc.status_code >= 500:
    logger.error("%s: %s (%s)", exc.code, exc.message, exc.details)
  return JSONResponse(
      status_code=exc.status_code,
      content=error_body(exc.message, exc.code, exc.details),
  )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request, exc: RequestValidationError
):
  """Reports malformed request bodies as 400s in the common error shape."""
  del request  # Unused.
  details = [
      {"loc": list(err.get("loc", ())), "msg": err.get("msg")}
      for err in exc.errors()
  ]
  return JSONResponse(
      status_code=400,
      content=error_body("Invalid request body", "INVALID_REQUEST", details),
  )


app.include_router(checkout_router)
app.include_router(order_router)


def main(argv: Sequence[str]) -> None:
  """Main entry point for the checkout server."""
  del argv  # Unused.

  if (
      config.FLAGS.products_db_path is None
      or config.FLAGS.transactions_db_path is None
      or config.FLAGS.port is None
  ):
    logger.error(
        "Both --products_db_path, --transactions_db_path, and --port must be"
        " provided."
    )
    print("\nUsage:")
    print(config.FLAGS.main_module_help())
    sys.exit(1)

  if (
      config.FLAGS.payment_delegate == "stripe"
      and not config.FLAGS.stripe_api_key
  ):
    logger.error("--stripe_api_key is required with --payment_delegate=stripe")
    sys.exit(1)

  uvicorn.run(app, host="0.0.0.0", port=config.FLAGS.port)


if __name__ == "__main__":
  absl_app.run(main)
