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

"""Fulfillment service for calculating shipping options.

This module encapsulates the logic for determining the available shipping
menu and the applied option based on the destination country.
"""

from typing import Dict, List, Optional, Tuple

from models import ShippingAddress
from models import ShippingOption

DEFAULT_OPTION_ID = "standard"

# Amounts in øre.
SHIPPING_MENUS: Dict[str, Tuple[ShippingOption, ...]] = {
    "NO": (
        ShippingOption(id="standard", label="Standard levering", amount=4900),
        ShippingOption(id="express", label="Ekspress levering", amount=9900),
    ),
}


class FulfillmentService:
  """Service for handling fulfillment logic."""

  def calculate_options(
      self, address: Optional[ShippingAddress]
  ) -> List[ShippingOption]:
    """Returns the shipping menu for the address.

    Args:
      address: The shipping address, if known.

    Returns:
      A copy of the country's menu, or an empty list when the address is
      absent or the country is not shipped to.
    """
    if not address or not address.country:
      return []
    menu = SHIPPING_MENUS.get(address.country.strip().upper(), ())
    return [option.model_copy() for option in menu]

  def select_option(
      self,
      options: List[ShippingOption],
      selected_id: Optional[str] = None,
  ) -> Optional[ShippingOption]:
    """Resolves the applied option from the menu.

    An explicit selection that is not on the menu is treated as no selection,
    since address and option can be updated independently.
    """
    if selected_id:
      selected = next((o for o in options if o.id == selected_id), None)
      if selected:
        return selected
    return next((o for o in options if o.id == DEFAULT_OPTION_ID), None)
