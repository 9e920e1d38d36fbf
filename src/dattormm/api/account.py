#!/usr/bin/env python3
"""Account-level collections of the Datto RMM API.

Everything under ``/v2/account``: the account record itself and the
account-wide device, site, user, variable, component and alert lists.

Example:
    async with RMMClient(token) as client:
        account = AccountAPI(client)
        devices = await account.get_devices()
        sites = await account.get_sites()
"""
import logging
from typing import Optional

from .client import RMMClient

logger = logging.getLogger(__name__)


class AccountAPI:
    """Read access to account-wide resources.

    Attributes:
        client: RMMClient instance for API communication
    """

    ENDPOINT = "/v2/account"

    def __init__(self, client: RMMClient):
        self.client = client

    async def get_account(self) -> dict:
        """Fetch the account record (name, uid, device counts)."""
        return await self.client.get(self.ENDPOINT)

    async def get_devices(self, filter_id: Optional[int] = None) -> list[dict]:
        """Fetch every device in the account.

        Args:
            filter_id: Optional device filter to apply server-side
        """
        params = {"filterId": filter_id} if filter_id is not None else None
        devices = await self.client.fetch_all(
            f"{self.ENDPOINT}/devices", items_key="devices", params=params
        )
        logger.info(f"Retrieved {len(devices):,} devices")
        return devices

    async def get_sites(self) -> list[dict]:
        """Fetch every site in the account."""
        sites = await self.client.fetch_all(f"{self.ENDPOINT}/sites", items_key="sites")
        logger.info(f"Retrieved {len(sites):,} sites")
        return sites

    async def get_users(self) -> list[dict]:
        """Fetch every user of the account."""
        users = await self.client.fetch_all(f"{self.ENDPOINT}/users", items_key="users")
        logger.info(f"Retrieved {len(users):,} users")
        return users

    async def get_variables(self) -> list[dict]:
        """Fetch account-level variables."""
        return await self.client.fetch_all(f"{self.ENDPOINT}/variables", items_key="variables")

    async def get_components(self) -> list[dict]:
        """Fetch the component library (scripts usable in quick jobs)."""
        return await self.client.fetch_all(f"{self.ENDPOINT}/components", items_key="components")

    async def get_open_alerts(self) -> list[dict]:
        return await self.client.fetch_all(f"{self.ENDPOINT}/alerts/open", items_key="alerts")

    async def get_resolved_alerts(self) -> list[dict]:
        return await self.client.fetch_all(f"{self.ENDPOINT}/alerts/resolved", items_key="alerts")
