#!/usr/bin/env python3
"""Job reads for the Datto RMM API: job status, components and per-device output."""
import logging

from .client import RMMClient
from .exceptions import ValidationError

logger = logging.getLogger(__name__)


class JobAPI:
    """Read access to jobs started through quick jobs or policies.

    Attributes:
        client: RMMClient instance for API communication
    """

    ENDPOINT = "/v2/job"

    def __init__(self, client: RMMClient):
        self.client = client

    def _job_path(self, job_uid: str) -> str:
        if not job_uid:
            raise ValidationError("A job UID is required", field="job_uid")
        return f"{self.ENDPOINT}/{job_uid}"

    def _result_path(self, job_uid: str, device_uid: str) -> str:
        if not device_uid:
            raise ValidationError("A device UID is required", field="device_uid")
        return f"{self._job_path(job_uid)}/results/{device_uid}"

    async def get_job(self, job_uid: str) -> dict:
        """Fetch a job record (name, status, creation date)."""
        return await self.client.get(self._job_path(job_uid))

    async def get_components(self, job_uid: str) -> list[dict]:
        """Fetch the components of a job (all pages)."""
        return await self.client.fetch_all(
            f"{self._job_path(job_uid)}/components", items_key="jobComponents"
        )

    async def get_results(self, job_uid: str, device_uid: str) -> dict:
        """Fetch the result of a job on one device."""
        return await self.client.get(self._result_path(job_uid, device_uid))

    async def get_stdout(self, job_uid: str, device_uid: str) -> list[dict]:
        """Fetch captured standard output of each component run on one device."""
        return _as_list(await self.client.get(f"{self._result_path(job_uid, device_uid)}/stdout"))

    async def get_stderr(self, job_uid: str, device_uid: str) -> list[dict]:
        """Fetch captured standard error of each component run on one device."""
        return _as_list(await self.client.get(f"{self._result_path(job_uid, device_uid)}/stderr"))


def _as_list(data) -> list[dict]:
    # The output endpoints return a bare JSON array; an empty body decodes to {}
    if isinstance(data, list):
        return data
    return [data] if data else []
