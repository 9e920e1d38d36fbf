#!/usr/bin/env python3
"""Unit tests for Device Operations.

Tests cover:
    - Device reads and software audits
    - Skipping devices that no longer exist during multi-device audits
    - UDF key normalization and validation
    - Quick job payload
"""
import logging
from unittest.mock import AsyncMock, MagicMock

import pytest

from dattormm.api.client import RMMClient
from dattormm.api.devices import DeviceAPI
from dattormm.api.exceptions import (
    NotFoundError,
    PartialFetchError,
    ServerError,
    ValidationError,
)


@pytest.fixture
def mock_client():
    """Create a mock RMMClient."""
    client = MagicMock(spec=RMMClient)
    client.get = AsyncMock(return_value={})
    client.post = AsyncMock(return_value={})
    client.put = AsyncMock(return_value={})
    client.fetch_all = AsyncMock(return_value=[])
    return client


@pytest.fixture
def devices(mock_client):
    return DeviceAPI(mock_client)


# ============================================
# Read Tests
# ============================================

class TestDeviceReads:
    """Test single-device reads."""

    def test_endpoint_constants(self):
        assert DeviceAPI.ENDPOINT == "/v2/device"
        assert DeviceAPI.AUDIT_ENDPOINT == "/v2/audit/device"

    @pytest.mark.asyncio
    async def test_get_device(self, devices, mock_client):
        mock_client.get.return_value = {"uid": "dev-1", "hostname": "FIN-WS01"}

        device = await devices.get_device("dev-1")

        assert device["hostname"] == "FIN-WS01"
        mock_client.get.assert_awaited_once_with("/v2/device/dev-1")

    @pytest.mark.asyncio
    async def test_get_software(self, devices, mock_client):
        mock_client.fetch_all.return_value = [{"name": "7-Zip", "version": "23.01"}]

        software = await devices.get_software("dev-1")

        assert software[0]["name"] == "7-Zip"
        mock_client.fetch_all.assert_awaited_once_with(
            "/v2/audit/device/dev-1/software", items_key="software"
        )


# ============================================
# Software Audit Tests
# ============================================

class TestSoftwareAudits:
    """Test multi-device software audits."""

    @pytest.mark.asyncio
    async def test_all_devices_audited(self, devices, mock_client):
        mock_client.fetch_all.side_effect = [[{"name": "a"}], [{"name": "b"}, {"name": "c"}]]

        results = await devices.get_software_audits(["dev-1", "dev-2"])

        assert list(results) == ["dev-1", "dev-2"]
        assert len(results["dev-2"]) == 2

    @pytest.mark.asyncio
    async def test_missing_device_skipped(self, devices, mock_client, caplog):
        """A 404 for one device is logged and the loop continues."""
        mock_client.fetch_all.side_effect = [
            [{"name": "a"}],
            NotFoundError("Device", "dev-2"),
            [{"name": "c"}],
        ]

        with caplog.at_level(logging.WARNING, logger="dattormm.api.devices"):
            results = await devices.get_software_audits(["dev-1", "dev-2", "dev-3"])

        assert list(results) == ["dev-1", "dev-3"]
        assert mock_client.fetch_all.await_count == 3
        assert "dev-2 not found" in caplog.text

    @pytest.mark.asyncio
    async def test_raise_on_skip(self, devices, mock_client):
        mock_client.fetch_all.side_effect = [NotFoundError("Device", "dev-1"), [{"name": "b"}]]

        with pytest.raises(PartialFetchError) as exc:
            await devices.get_software_audits(["dev-1", "dev-2"], raise_on_skip=True)

        assert exc.value.succeeded == 1
        assert exc.value.failed == 1

    @pytest.mark.asyncio
    async def test_other_errors_stop_the_loop(self, devices, mock_client):
        """Only missing devices are skipped; other failures propagate."""
        mock_client.fetch_all.side_effect = [ServerError(status_code=500), [{"name": "b"}]]

        with pytest.raises(ServerError):
            await devices.get_software_audits(["dev-1", "dev-2"])

        assert mock_client.fetch_all.await_count == 1


# ============================================
# UDF Tests
# ============================================

class TestUdfs:
    """Test user-defined field writes."""

    @pytest.mark.asyncio
    async def test_set_udfs_payload(self, devices, mock_client):
        """Keys may be 'udfN', 'UDFN' or plain ints; None clears a field."""
        await devices.set_udfs("dev-1", {"udf1": "Asset 4411", "UDF2": "Floor 2", 30: None})

        mock_client.post.assert_awaited_once_with(
            "/v2/device/dev-1/udf",
            json_body={"udf1": "Asset 4411", "udf2": "Floor 2", "udf30": None},
        )

    @pytest.mark.asyncio
    @pytest.mark.parametrize("key", ["udf0", "udf31", 0, "color", "udfx"])
    async def test_unknown_field_rejected(self, devices, mock_client, key):
        with pytest.raises(ValidationError):
            await devices.set_udfs("dev-1", {key: "x"})
        mock_client.post.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_value_too_long(self, devices, mock_client):
        with pytest.raises(ValidationError) as exc:
            await devices.set_udfs("dev-1", {"udf5": "x" * 256})
        assert exc.value.field == "udf5"

    @pytest.mark.asyncio
    async def test_empty_mapping_rejected(self, devices, mock_client):
        with pytest.raises(ValidationError):
            await devices.set_udfs("dev-1", {})

    @pytest.mark.asyncio
    async def test_device_uid_required(self, devices, mock_client):
        with pytest.raises(ValidationError):
            await devices.set_udfs("", {"udf1": "x"})
        mock_client.post.assert_not_awaited()


# ============================================
# Quick Job Tests
# ============================================

class TestQuickJob:
    """Test quick job creation."""

    @pytest.mark.asyncio
    async def test_payload(self, devices, mock_client):
        mock_client.put.return_value = {"job": {"uid": "job-1", "name": "Restart spooler"}}

        result = await devices.start_quick_job(
            "dev-1", "Restart spooler", "comp-9", variables={"Service": "Spooler", "Retries": 3}
        )

        assert result["job"]["uid"] == "job-1"
        mock_client.put.assert_awaited_once_with(
            "/v2/device/dev-1/quickjob",
            json_body={
                "jobName": "Restart spooler",
                "jobComponent": {
                    "componentUid": "comp-9",
                    "variables": [
                        {"name": "Service", "value": "Spooler"},
                        {"name": "Retries", "value": "3"},
                    ],
                },
            },
        )

    @pytest.mark.asyncio
    async def test_no_variables(self, devices, mock_client):
        await devices.start_quick_job("dev-1", "Inventory", "comp-1")

        body = mock_client.put.call_args.kwargs["json_body"]
        assert body["jobComponent"]["variables"] == []

    @pytest.mark.asyncio
    async def test_component_required(self, devices, mock_client):
        with pytest.raises(ValidationError):
            await devices.start_quick_job("dev-1", "Inventory", "")
        mock_client.put.assert_not_awaited()
