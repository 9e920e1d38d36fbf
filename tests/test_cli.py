#!/usr/bin/env python3
"""Unit tests for the command-line interface.

Tests cover:
    - Argument parsing for each subcommand
    - Dispatch of subcommands to the resource wrappers
    - JSON output to stdout and to a file
    - Exit codes and sanitized error output
"""
import json
import logging
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from dattormm import cli
from dattormm.api.client import RMMClient
from dattormm.api.exceptions import ServerError, TokenExpiredError
from dattormm.config import RMMSettings

SECRET = "cli-secret-771x"


@pytest.fixture(autouse=True)
def reset_package_logger():
    yield
    logger = logging.getLogger("dattormm")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.setLevel(logging.NOTSET)


@pytest.fixture
def credentials(monkeypatch):
    monkeypatch.setenv("DRMM_API_KEY", "KEY")
    monkeypatch.setenv("DRMM_API_SECRET", SECRET)


@pytest.fixture
def mock_client():
    client = MagicMock(spec=RMMClient)
    client.get = AsyncMock(return_value={})
    client.post = AsyncMock(return_value={})
    client.put = AsyncMock(return_value={})
    client.fetch_all = AsyncMock(return_value=[])
    return client


def _parse(*argv):
    return cli.build_parser().parse_args(list(argv))


# ============================================
# Argument Parsing Tests
# ============================================

class TestParser:
    """Test argparse configuration."""

    def test_command_required(self):
        with pytest.raises(SystemExit):
            _parse()

    def test_global_options(self):
        args = _parse("--api-url", "https://x", "--max-retries", "0", "--retry-delay", "5", "-v", "sites")
        assert args.api_url == "https://x"
        assert args.max_retries == 0
        assert args.retry_delay == 5.0
        assert args.verbose is True
        assert args.command == "sites"

    def test_unset_flags_defer_to_env(self):
        args = _parse("sites")
        assert args.verbose is None
        assert args.event_log is None

    def test_negative_retries_rejected(self):
        with pytest.raises(SystemExit):
            _parse("--max-retries", "-1", "sites")

    def test_set_udf_assignments(self):
        args = _parse("set-udf", "dev-1", "udf5=Finance", "udf6=")
        assert args.assignments == [("udf5", "Finance"), ("udf6", "")]

    def test_set_udf_requires_equals(self):
        with pytest.raises(SystemExit):
            _parse("set-udf", "dev-1", "udf5")

    def test_quick_job_vars(self):
        args = _parse("quick-job", "dev-1", "comp-1", "--var", "Mode=full", "--var", "Url=a=b")
        assert args.variables == [("Mode", "full"), ("Url", "a=b")]


# ============================================
# Dispatch Tests
# ============================================

class TestDispatch:
    """Test subcommand dispatch against a mocked client."""

    @pytest.mark.asyncio
    async def test_devices(self, mock_client):
        mock_client.fetch_all.return_value = [{"uid": "d1"}]

        result = await cli.dispatch(_parse("devices", "--filter-id", "4"), mock_client)

        assert result == [{"uid": "d1"}]
        mock_client.fetch_all.assert_awaited_once_with(
            "/v2/account/devices", items_key="devices", params={"filterId": 4}
        )

    @pytest.mark.asyncio
    async def test_site_devices(self, mock_client):
        await cli.dispatch(_parse("devices", "--site", "s1"), mock_client)

        mock_client.fetch_all.assert_awaited_once_with("/v2/site/s1/devices", items_key="devices")

    @pytest.mark.asyncio
    async def test_variables_site(self, mock_client):
        await cli.dispatch(_parse("variables", "--site", "s1"), mock_client)

        mock_client.fetch_all.assert_awaited_once_with("/v2/site/s1/variables", items_key="variables")

    @pytest.mark.asyncio
    async def test_software(self, mock_client):
        mock_client.fetch_all.return_value = [{"name": "7-Zip"}]

        result = await cli.dispatch(_parse("software", "d1", "d2"), mock_client)

        assert set(result) == {"d1", "d2"}

    @pytest.mark.asyncio
    async def test_job_with_device(self, mock_client):
        mock_client.get.side_effect = [
            {"uid": "j1", "status": "completed"},
            {"jobDeploymentStatus": "success"},
            [{"stdData": "ok"}],
            [],
        ]

        result = await cli.dispatch(_parse("job", "j1", "--device", "d1"), mock_client)

        assert result["job"]["status"] == "completed"
        assert result["stdout"] == [{"stdData": "ok"}]
        assert result["stderr"] == []

    @pytest.mark.asyncio
    async def test_inventory(self, mock_client):
        async def fetch_all(path, **kwargs):
            return [{"path": path}]

        mock_client.fetch_all.side_effect = fetch_all

        result = await cli.dispatch(_parse("inventory"), mock_client)

        assert set(result) == {"devices", "sites", "users"}
        assert result["sites"] == [{"path": "/v2/account/sites"}]

    @pytest.mark.asyncio
    async def test_inventory_failure_raises(self, mock_client):
        async def fetch_all(path, **kwargs):
            if path.endswith("/users"):
                raise ServerError(status_code=500)
            return []

        mock_client.fetch_all.side_effect = fetch_all

        with pytest.raises(ServerError):
            await cli.dispatch(_parse("inventory"), mock_client)

    @pytest.mark.asyncio
    async def test_set_variable(self, mock_client):
        await cli.dispatch(_parse("set-variable", "s1", "Mode", "full", "--masked"), mock_client)

        mock_client.put.assert_awaited_once_with(
            "/v2/site/s1/variable",
            json_body={"name": "Mode", "value": "full", "masked": True},
        )

    @pytest.mark.asyncio
    async def test_set_udf_empty_value_clears(self, mock_client):
        await cli.dispatch(_parse("set-udf", "d1", "udf5=Finance", "udf6="), mock_client)

        mock_client.post.assert_awaited_once_with(
            "/v2/device/d1/udf", json_body={"udf5": "Finance", "udf6": None}
        )

    @pytest.mark.asyncio
    async def test_quick_job(self, mock_client):
        await cli.dispatch(
            _parse("quick-job", "d1", "comp-1", "--name", "Cleanup", "--var", "Days=30"),
            mock_client,
        )

        body = mock_client.put.call_args.kwargs["json_body"]
        assert body["jobName"] == "Cleanup"
        assert body["jobComponent"]["variables"] == [{"name": "Days", "value": "30"}]

    @pytest.mark.asyncio
    async def test_quick_job_default_name(self, mock_client):
        await cli.dispatch(_parse("quick-job", "d1", "comp-1"), mock_client)

        body = mock_client.put.call_args.kwargs["json_body"]
        assert body["jobName"].startswith("dattormm quick job")


# ============================================
# run() Tests
# ============================================

class TestRun:
    """Test authentication and client wiring."""

    @pytest.mark.asyncio
    async def test_authenticates_then_dispatches(self, mock_client):
        settings = RMMSettings(api_key="KEY", api_secret=SECRET, max_retries=3, retry_delay=1)
        provider = MagicMock()
        provider.authenticate = AsyncMock(return_value="tok-1")
        client_cm = MagicMock()
        client_cm.__aenter__ = AsyncMock(return_value=mock_client)
        client_cm.__aexit__ = AsyncMock(return_value=None)
        mock_client.fetch_all.return_value = [{"uid": "s1"}]

        with patch("dattormm.cli.TokenProvider", return_value=provider) as provider_cls, \
                patch("dattormm.cli.RMMClient", return_value=client_cm) as client_cls:
            result = await cli.run(_parse("sites"), settings)

        assert result == [{"uid": "s1"}]
        provider_cls.assert_called_once_with(
            api_key="KEY", api_secret=SECRET, api_url="https://pinotage-api.centrastage.net"
        )
        token, = client_cls.call_args.args
        assert token == "tok-1"
        assert client_cls.call_args.kwargs["retry_policy"].max_attempts == 3


# ============================================
# main() Tests
# ============================================

class TestMain:
    """Test exit codes and output."""

    def test_json_to_stdout(self, credentials, capsys):
        with patch("dattormm.cli.run", new=AsyncMock(return_value=[{"uid": "s1"}])):
            code = cli.main(["sites"])

        assert code == 0
        assert json.loads(capsys.readouterr().out) == [{"uid": "s1"}]

    def test_json_to_file(self, credentials, tmp_path, capsys):
        output = tmp_path / "sites.json"

        with patch("dattormm.cli.run", new=AsyncMock(return_value=[{"uid": "s1"}])):
            code = cli.main(["--output", str(output), "sites"])

        assert code == 0
        assert json.loads(output.read_text()) == [{"uid": "s1"}]
        assert capsys.readouterr().out == ""

    def test_missing_credentials_exit_1(self, capsys):
        code = cli.main(["sites"])

        assert code == 1
        err = capsys.readouterr().err
        assert "DRMM_API_KEY" in err
        assert "DRMM_API_SECRET" in err

    def test_api_error_sanitized(self, credentials, capsys):
        error = TokenExpiredError(f"rejected token for secret {SECRET}")

        with patch("dattormm.cli.run", new=AsyncMock(side_effect=error)):
            code = cli.main(["sites"])

        assert code == 1
        err = capsys.readouterr().err
        assert "TOKEN_EXPIRED" in err
        assert SECRET not in err
