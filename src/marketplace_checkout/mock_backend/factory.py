"""Mock marketplace factory.

Creates the in-memory marketplace backend from the bundled JSON catalog.
"""

from __future__ import annotations

import json
from pathlib import Path

from marketplace_checkout.mock_backend.marketplace_app import MockMarketplaceApp

_CATALOG_DIR = Path(__file__).parent / "catalogs"


class MarketplaceFactory:
    """Factory for the mock marketplace backend."""

    @staticmethod
    def create_marketplace(
        catalog_file: str = "marketplace.json",
        customer_id: str = "u-client-1",
        seed_cart: dict[str, int] | None = None,
        fail_confirmations: int = 0,
    ) -> MockMarketplaceApp:
        """Create a mock marketplace from a JSON catalog file.

        Parameters
        ----------
        catalog_file:
            Filename of the JSON catalog inside the ``catalogs/`` directory.
        customer_id:
            The signed-in buyer.
        seed_cart:
            Product id -> quantity to place in the buyer's cart up front.
        fail_confirmations:
            Number of ``order/confirm`` calls that should fail first.
        """
        catalog_path = _CATALOG_DIR / catalog_file
        if not catalog_path.exists():
            raise FileNotFoundError(f"Catalog file not found: {catalog_path}")

        with open(catalog_path) as f:
            catalog = json.load(f)

        marketplace = MockMarketplaceApp(
            users=catalog["users"],
            products=catalog["products"],
            media=catalog["media"],
            customer_id=customer_id,
            fail_confirmations=fail_confirmations,
        )
        for product_id, quantity in (seed_cart or {}).items():
            marketplace.seed_cart(product_id, quantity)
        return marketplace
