#!/usr/bin/env python3
"""Site Operations for the Datto RMM API.

Reads (site record, site devices, site variables) and the two site-variable
mutations the API offers:

    - PUT  /v2/site/{siteUid}/variable               create
    - POST /v2/site/{siteUid}/variable/{variableId}  update

Example:
    async with RMMClient(token) as client:
        sites = SiteAPI(client)
        await sites.set_variable(site_uid, "BackupTarget", "nas01", masked=False)
"""
import logging
from typing import Optional

from .client import RMMClient
from .exceptions import ValidationError

logger = logging.getLogger(__name__)


class SiteAPI:
    """Site reads and site-variable writes.

    Attributes:
        client: RMMClient instance for API communication
    """

    ENDPOINT = "/v2/site"

    def __init__(self, client: RMMClient):
        self.client = client

    def _site_path(self, site_uid: str) -> str:
        if not site_uid:
            raise ValidationError("A site UID is required", field="site_uid")
        return f"{self.ENDPOINT}/{site_uid}"

    # ----------------------------------------
    # Reads
    # ----------------------------------------

    async def get_site(self, site_uid: str) -> dict:
        """Fetch one site record."""
        return await self.client.get(self._site_path(site_uid))

    async def get_devices(self, site_uid: str) -> list[dict]:
        """Fetch every device of one site."""
        devices = await self.client.fetch_all(
            f"{self._site_path(site_uid)}/devices", items_key="devices"
        )
        logger.info(f"Retrieved {len(devices):,} devices for site {site_uid}")
        return devices

    async def get_variables(self, site_uid: str) -> list[dict]:
        """Fetch the variables defined on one site."""
        return await self.client.fetch_all(
            f"{self._site_path(site_uid)}/variables", items_key="variables"
        )

    # ----------------------------------------
    # Variable writes
    # ----------------------------------------

    async def create_variable(
        self,
        site_uid: str,
        name: str,
        value: str,
        masked: bool = False,
    ) -> dict:
        """Create a site variable.

        Args:
            site_uid: Target site
            name: Variable name
            value: Variable value
            masked: Hide the value in the web portal
        """
        if not name:
            raise ValidationError("Variable name is required", field="name")

        logger.info(f"Creating variable '{name}' on site {site_uid}")
        return await self.client.put(
            f"{self._site_path(site_uid)}/variable",
            json_body={"name": name, "value": value, "masked": masked},
        )

    async def update_variable(
        self,
        site_uid: str,
        variable_id: int,
        name: str,
        value: str,
    ) -> dict:
        """Update an existing site variable by id."""
        if not name:
            raise ValidationError("Variable name is required", field="name")

        logger.info(f"Updating variable '{name}' (id {variable_id}) on site {site_uid}")
        return await self.client.post(
            f"{self._site_path(site_uid)}/variable/{variable_id}",
            json_body={"name": name, "value": value},
        )

    async def set_variable(
        self,
        site_uid: str,
        name: str,
        value: str,
        masked: bool = False,
    ) -> dict:
        """Update the variable called ``name`` if it exists, else create it.

        ``masked`` only applies when the variable is created; the API does
        not change masking on update.
        """
        existing = await self.find_variable(site_uid, name)
        if existing is not None:
            return await self.update_variable(site_uid, existing["id"], name, value)
        return await self.create_variable(site_uid, name, value, masked=masked)

    async def find_variable(self, site_uid: str, name: str) -> Optional[dict]:
        """Return the site variable called ``name`` or None."""
        for variable in await self.get_variables(site_uid):
            if variable.get("name") == name:
                return variable
        return None
