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

"""Enumerations for the checkout server.

This module defines the enums used throughout the server application to
represent the state of checkout sessions and orders.
"""

import enum


class CheckoutStatus(str, enum.Enum):
  CREATED = "created"
  UPDATED = "updated"
  COMPLETED = "completed"


class OrderStatus(str, enum.Enum):
  PAID = "paid"
  PENDING_PAYMENT = "pending_payment"
