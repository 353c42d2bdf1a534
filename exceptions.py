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

"""Custom exceptions for the checkout server."""

from typing import Optional


class CheckoutError(Exception):
  """Base class for all checkout exceptions.

  `message` is the stable, user-visible text. `details` carries internal
  context (e.g. a driver error) and is only rendered when explicitly enabled.
  """

  def __init__(
      self,
      message: str,
      code: str = "INTERNAL_ERROR",
      status_code: int = 500,
      details: Optional[str] = None,
  ):
    self.message = message
    self.code = code
    self.status_code = status_code
    self.details = details
    super().__init__(self.message)


class ValidationError(CheckoutError):
  """Raised when the request is malformed or missing required fields."""

  def __init__(self, message: str):
    super().__init__(message, code="INVALID_REQUEST", status_code=400)


class NotFoundError(CheckoutError):
  """Raised when a requested resource is not found."""

  def __init__(self, message: str):
    super().__init__(message, code="RESOURCE_NOT_FOUND", status_code=404)


class ConflictError(CheckoutError):
  """Raised when an operation is not valid in the session's current state."""

  def __init__(
      self,
      message: str,
      code: str = "CHECKOUT_COMPLETED",
      status_code: int = 400,
  ):
    super().__init__(message, code=code, status_code=status_code)


class OutOfStockError(ConflictError):
  """Raised when stock ran out between pricing and order creation."""

  def __init__(self, message: str):
    super().__init__(message, code="OUT_OF_STOCK", status_code=409)


class StorageError(CheckoutError):
  """Raised when the persistence layer fails."""

  def __init__(self, message: str, details: Optional[str] = None):
    super().__init__(
        message, code="STORAGE_ERROR", status_code=500, details=details
    )


class UpstreamError(CheckoutError):
  """Raised when the catalog, payment or order collaborator fails."""

  def __init__(
      self,
      message: str,
      details: Optional[str] = None,
      code: str = "UPSTREAM_ERROR",
      status_code: int = 500,
  ):
    super().__init__(
        message, code=code, status_code=status_code, details=details
    )


class PaymentFailedError(UpstreamError):
  """Raised when the payment delegate declines or fails a payment."""

  def __init__(
      self,
      message: str,
      code: str = "PAYMENT_FAILED",
      status_code: int = 402,
      details: Optional[str] = None,
  ):
    super().__init__(
        message, details=details, code=code, status_code=status_code
    )
