"""
Funding Option Catalog — registered providers that proposals may draw on.

Options are assigned dense ids from 1 and are never removed. Deactivation
is one-way and only hides an option from the active listing; proposals
created earlier keep their reference to it.
"""

from __future__ import annotations

import logging

from treasury_dao.core.errors import (
    AlreadyInactive,
    InvalidAddress,
    InvalidAmount,
    InvalidOption,
    MissingField,
)
from treasury_dao.core.schema import FundingOption, is_null_address

logger = logging.getLogger(__name__)


class FundingOptionCatalog:
    """Arena of funding options. Authorization is the owner's job."""

    def __init__(self) -> None:
        self._options: list[FundingOption] = []

    def add(self, provider: str, name: str, details: str, price: int) -> FundingOption:
        if is_null_address(provider):
            raise InvalidAddress("Option provider must be a non-null principal")
        if not name:
            raise MissingField("Option name must not be empty")
        if not details:
            raise MissingField("Option details must not be empty")
        if price <= 0:
            raise InvalidAmount(f"Option price must be positive, got {price}")

        option = FundingOption(
            id=len(self._options) + 1,
            provider=provider,
            name=name,
            details=details,
            price=price,
        )
        self._options.append(option)
        logger.info("Funding option #%d added: %s (%s)", option.id, name, provider)
        return option

    def deactivate(self, option_id: int) -> FundingOption:
        option = self._require(option_id)
        if not option.is_active:
            raise AlreadyInactive(f"Option {option_id} is already inactive")
        option.is_active = False
        logger.info("Funding option #%d deactivated", option_id)
        return option

    def get(self, option_id: int) -> FundingOption:
        return self._require(option_id).model_copy()

    def list_active(self) -> list[int]:
        """Ascending ids of active options (full scan)."""
        return [option.id for option in self._options if option.is_active]

    def __len__(self) -> int:
        return len(self._options)

    def _require(self, option_id: int) -> FundingOption:
        if not 1 <= option_id <= len(self._options):
            raise InvalidOption(f"Option {option_id} does not exist")
        return self._options[option_id - 1]
