#!/usr/bin/env python3
"""Device Operations for the Datto RMM API.

Architecture:
    DeviceAPI handles single-device reads and the device-level writes:
    - Set user-defined fields (POST /v2/device/{uid}/udf)
    - Start a quick job (PUT /v2/device/{uid}/quickjob)

    Software audits are paginated per device. When auditing many devices,
    a device that no longer exists (404) is logged and skipped; every other
    failure stops the run.

Example:
    async with RMMClient(token) as client:
        devices = DeviceAPI(client)
        await devices.set_udfs(device_uid, {"udf5": "Finance", 6: "Floor 2"})
        job = await devices.start_quick_job(device_uid, "Restart spooler", component_uid)
        audits = await devices.get_software_audits([uid1, uid2, uid3])
"""
import logging
from typing import Optional, Union

from .client import RMMClient
from .exceptions import ErrorCollector, NotFoundError, ValidationError

logger = logging.getLogger(__name__)

UdfKey = Union[str, int]


class DeviceAPI:
    """Device reads, UDF writes, quick jobs and software audits.

    Attributes:
        client: RMMClient instance for API communication
    """

    ENDPOINT = "/v2/device"
    AUDIT_ENDPOINT = "/v2/audit/device"
    MAX_UDF = 30
    MAX_UDF_LENGTH = 255

    def __init__(self, client: RMMClient):
        self.client = client

    def _device_path(self, device_uid: str) -> str:
        if not device_uid:
            raise ValidationError("A device UID is required", field="device_uid")
        return f"{self.ENDPOINT}/{device_uid}"

    # ----------------------------------------
    # Reads
    # ----------------------------------------

    async def get_device(self, device_uid: str) -> dict:
        """Fetch one device record."""
        return await self.client.get(self._device_path(device_uid))

    async def get_software(self, device_uid: str) -> list[dict]:
        """Fetch the software audit of one device (all pages)."""
        if not device_uid:
            raise ValidationError("A device UID is required", field="device_uid")
        return await self.client.fetch_all(
            f"{self.AUDIT_ENDPOINT}/{device_uid}/software", items_key="software"
        )

    async def get_software_audits(
        self,
        device_uids: list[str],
        *,
        raise_on_skip: bool = False,
    ) -> dict[str, list[dict]]:
        """Fetch software audits for several devices, one after another.

        Args:
            device_uids: Devices to audit
            raise_on_skip: Raise PartialFetchError after the loop if any
                device was skipped

        Returns:
            Dict mapping device UID to its software list; skipped devices are absent

        Raises:
            PartialFetchError: If raise_on_skip and at least one device was missing
            RMMError: Any failure other than a missing device, immediately
        """
        results: dict[str, list[dict]] = {}
        skipped = ErrorCollector()

        for index, device_uid in enumerate(device_uids, start=1):
            logger.info(f"Auditing software on device {device_uid} ({index}/{len(device_uids)})")
            try:
                results[device_uid] = await self.get_software(device_uid)
            except NotFoundError as e:
                logger.warning(f"Device {device_uid} not found, skipping software audit")
                skipped.add(e)
                continue

            logger.info(f"Device {device_uid}: {len(results[device_uid]):,} software entries")

        if skipped.has_errors():
            logger.warning(f"Skipped {skipped.count()} of {len(device_uids)} device(s)")
            if raise_on_skip:
                raise skipped.to_exception(succeeded=len(results))

        return results

    # ----------------------------------------
    # User-defined fields
    # ----------------------------------------

    def _normalize_udfs(self, udfs: dict[UdfKey, Optional[str]]) -> dict[str, Optional[str]]:
        """Map ``{"udf3": "x", 4: "y"}`` to the API's ``{"udf3": "x", "udf4": "y"}``.

        Raises:
            ValidationError: On an empty mapping, an unknown field or an over-long value
        """
        if not udfs:
            raise ValidationError("At least one UDF value is required", field="udfs")

        payload: dict[str, Optional[str]] = {}
        for key, value in udfs.items():
            if isinstance(key, int):
                number = key
            else:
                text = str(key).strip().lower()
                digits = text[3:] if text.startswith("udf") else text
                number = int(digits) if digits.isdigit() else 0

            if not 1 <= number <= self.MAX_UDF:
                raise ValidationError(
                    f"Unknown user-defined field '{key}' (expected udf1..udf{self.MAX_UDF})",
                    field=str(key),
                )

            if value is not None:
                value = str(value)
                if len(value) > self.MAX_UDF_LENGTH:
                    raise ValidationError(
                        f"udf{number} value exceeds {self.MAX_UDF_LENGTH} characters",
                        field=f"udf{number}",
                    )

            payload[f"udf{number}"] = value

        return payload

    async def set_udfs(self, device_uid: str, udfs: dict[UdfKey, Optional[str]]) -> dict:
        """Set one or more user-defined fields on a device.

        Fields not named keep their current value. A value of None clears
        the field.

        Example:
            await devices.set_udfs(uid, {"udf1": "Asset 4411", 2: None})
        """
        payload = self._normalize_udfs(udfs)
        logger.info(f"Setting {', '.join(sorted(payload))} on device {device_uid}")
        return await self.client.post(f"{self._device_path(device_uid)}/udf", json_body=payload)

    # ----------------------------------------
    # Quick jobs
    # ----------------------------------------

    async def start_quick_job(
        self,
        device_uid: str,
        job_name: str,
        component_uid: str,
        variables: Optional[dict[str, str]] = None,
    ) -> dict:
        """Run a component on one device immediately.

        Args:
            device_uid: Target device
            job_name: Name shown in the job list
            component_uid: Component to run
            variables: Component input variables

        Returns:
            The API response (``job`` record and ``jobComponents``)
        """
        if not job_name:
            raise ValidationError("A job name is required", field="job_name")
        if not component_uid:
            raise ValidationError("A component UID is required", field="component_uid")

        payload = {
            "jobName": job_name,
            "jobComponent": {
                "componentUid": component_uid,
                "variables": [
                    {"name": name, "value": str(value)}
                    for name, value in (variables or {}).items()
                ],
            },
        }

        logger.info(f"Starting quick job '{job_name}' on device {device_uid}")
        result = await self.client.put(f"{self._device_path(device_uid)}/quickjob", json_body=payload)

        job = result.get("job") if isinstance(result, dict) else None
        if isinstance(job, dict) and job.get("uid"):
            logger.info(f"Quick job started: {job['uid']}")
        return result
