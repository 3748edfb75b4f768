"""Tests for the Lighthouse CLI audit engine."""

import asyncio
import json
from pathlib import Path

import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from perf_harness.audit.engine import LighthouseEngine
from perf_harness.errors import AuditError
from perf_harness.models.perf_models import AuditSettings

LHR = {"categories": {"performance": {"score": 0.9}}, "audits": {}}


def output_path_of(command):
    flag = next(arg for arg in command if arg.startswith("--output-path="))
    return Path(flag.split("=", 1)[1])


def fake_process(returncode=0, stderr=b""):
    process = MagicMock()
    process.returncode = returncode
    process.communicate = AsyncMock(return_value=(b"", stderr))
    process.wait = AsyncMock()
    return process


@pytest.fixture
def engine():
    return LighthouseEngine(executable="lighthouse", timeout_s=5)


class TestBuildCommand:
    def test_desktop_command(self, engine):
        command = engine.build_command(
            "https://example.com", 9222, AuditSettings(), Path("/tmp/out/audit")
        )

        assert command[:2] == ["lighthouse", "https://example.com"]
        assert "--port=9222" in command
        assert "--output=json" in command
        assert "--output=html" in command
        assert "--output-path=/tmp/out/audit" in command
        assert "--only-categories=performance,accessibility,best-practices,seo" in command
        assert "--form-factor=desktop" in command
        assert "--screenEmulation.mobile=false" in command
        assert "--screenEmulation.width=1350" in command
        assert "--throttling.rttMs=40" in command
        assert "--throttling.cpuSlowdownMultiplier=1" in command

    def test_mobile_command(self, engine):
        command = engine.build_command(
            "https://example.com", 9333, AuditSettings.mobile(), Path("audit")
        )

        assert "--form-factor=mobile" in command
        assert "--screenEmulation.mobile=true" in command
        assert "--screenEmulation.deviceScaleFactor=2.75" in command
        assert "--throttling.cpuSlowdownMultiplier=4" in command

    def test_extra_flags_appended(self, engine):
        settings = AuditSettings(extra_flags=["--disable-storage-reset"])

        command = engine.build_command("https://example.com", 9222, settings, Path("audit"))

        assert command[-1] == "--disable-storage-reset"


class TestAudit:
    @pytest.mark.asyncio
    async def test_audit_reads_outputs(self, engine):
        """Test that the JSON result and HTML report are read back."""

        async def run_lighthouse(*command, **kwargs):
            output_path = output_path_of(command)
            Path(f"{output_path}.report.json").write_text(json.dumps(LHR))
            Path(f"{output_path}.report.html").write_text("<html>report</html>")
            return fake_process()

        with patch(
            "perf_harness.audit.engine.asyncio.create_subprocess_exec",
            side_effect=run_lighthouse,
        ) as mock_exec:
            result = await engine.audit("https://example.com", 9222, AuditSettings())

        assert result.lhr == LHR
        assert result.report_html == "<html>report</html>"
        assert "--port=9222" in mock_exec.call_args.args

    @pytest.mark.asyncio
    async def test_missing_html_is_tolerated(self, engine):
        async def run_lighthouse(*command, **kwargs):
            Path(f"{output_path_of(command)}.report.json").write_text(json.dumps(LHR))
            return fake_process()

        with patch(
            "perf_harness.audit.engine.asyncio.create_subprocess_exec",
            side_effect=run_lighthouse,
        ):
            result = await engine.audit("https://example.com", 9222, AuditSettings())

        assert result.report_html is None

    @pytest.mark.asyncio
    async def test_missing_executable(self, engine):
        with patch(
            "perf_harness.audit.engine.asyncio.create_subprocess_exec",
            side_effect=FileNotFoundError("lighthouse"),
        ):
            with pytest.raises(AuditError, match="not found"):
                await engine.audit("https://example.com", 9222, AuditSettings())

    @pytest.mark.asyncio
    async def test_non_zero_exit(self, engine):
        process = fake_process(returncode=1, stderr=b"Unable to connect to Chrome")

        with patch(
            "perf_harness.audit.engine.asyncio.create_subprocess_exec",
            AsyncMock(return_value=process),
        ):
            with pytest.raises(AuditError, match="Unable to connect to Chrome"):
                await engine.audit("https://example.com", 9222, AuditSettings())

    @pytest.mark.asyncio
    async def test_timeout_kills_process(self):
        engine = LighthouseEngine(timeout_s=0.01)
        process = fake_process()

        async def hang():
            await asyncio.sleep(1)

        process.communicate = AsyncMock(side_effect=hang)

        with patch(
            "perf_harness.audit.engine.asyncio.create_subprocess_exec",
            AsyncMock(return_value=process),
        ):
            with pytest.raises(AuditError, match="timed out"):
                await engine.audit("https://example.com", 9222, AuditSettings())

        process.kill.assert_called_once()

    @pytest.mark.asyncio
    async def test_unreadable_output(self, engine):
        with patch(
            "perf_harness.audit.engine.asyncio.create_subprocess_exec",
            AsyncMock(return_value=fake_process()),
        ):
            with pytest.raises(AuditError, match="Could not read"):
                await engine.audit("https://example.com", 9222, AuditSettings())
