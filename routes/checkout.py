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

"""Checkout session routes for the agentic commerce surface."""

from typing import Any, Optional

import dependencies
from fastapi import APIRouter
from fastapi import Body
from fastapi import Depends
from fastapi import Path
from fastapi import Response
from models import CheckoutSession
from models import CompleteCheckoutRequest
from models import CompleteCheckoutResponse
from models import CreateCheckoutRequest
from models import UpdateCheckoutRequest
from services.checkout_service import CheckoutService

router = APIRouter(prefix="/checkout_sessions", tags=["checkout"])

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}


def preflight_response() -> Response:
  """An empty 200 carrying permissive CORS headers."""
  return Response(status_code=200, headers=CORS_HEADERS)


@router.post(
    "",
    response_model=CheckoutSession,
    status_code=201,
    operation_id="create_checkout",
    summary="Create Checkout Session",
)
async def create_checkout(
    checkout_req: CreateCheckoutRequest = Body(...),
    checkout_service: CheckoutService = Depends(
        dependencies.get_checkout_service
    ),
) -> dict[str, Any]:
  """Create Checkout Implementation."""
  result = await checkout_service.create_checkout(checkout_req)
  return result.model_dump(mode="json")


@router.get(
    "/{id}",
    response_model=CheckoutSession,
    operation_id="get_checkout",
    summary="Get Checkout Session",
)
async def get_checkout(
    checkout_id: str = Path(..., alias="id"),
    checkout_service: CheckoutService = Depends(
        dependencies.get_checkout_service
    ),
) -> dict[str, Any]:
  """Get Checkout Implementation."""
  result = await checkout_service.get_checkout(checkout_id)
  return result.model_dump(mode="json")


@router.post(
    "/{id}",
    response_model=CheckoutSession,
    operation_id="update_checkout",
    summary="Update Checkout Session",
)
async def update_checkout(
    checkout_id: str = Path(..., alias="id"),
    checkout_req: UpdateCheckoutRequest = Body(...),
    checkout_service: CheckoutService = Depends(
        dependencies.get_checkout_service
    ),
) -> dict[str, Any]:
  """Update Checkout Implementation."""
  result = await checkout_service.update_checkout(checkout_id, checkout_req)
  return result.model_dump(mode="json")


@router.post(
    "/{id}/complete",
    response_model=CompleteCheckoutResponse,
    operation_id="complete_checkout",
    summary="Complete Checkout Session",
)
async def complete_checkout(
    checkout_id: str = Path(..., alias="id"),
    complete_req: Optional[CompleteCheckoutRequest] = Body(None),
    checkout_service: CheckoutService = Depends(
        dependencies.get_checkout_service
    ),
) -> dict[str, Any]:
  """Complete Checkout Implementation."""
  result = await checkout_service.complete_checkout(
      checkout_id, complete_req or CompleteCheckoutRequest()
  )
  return result.model_dump(mode="json")


@router.options("", include_in_schema=False)
async def create_checkout_options() -> Response:
  return preflight_response()


@router.options("/{id}", include_in_schema=False)
async def checkout_options(checkout_id: str = Path(..., alias="id")) -> Response:
  del checkout_id  # Unused.
  return preflight_response()


@router.options("/{id}/complete", include_in_schema=False)
async def complete_checkout_options(
    checkout_id: str = Path(..., alias="id"),
) -> Response:
  del checkout_id  # Unused.
  return preflight_response()
