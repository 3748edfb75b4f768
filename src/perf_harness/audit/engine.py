"""Web-performance audit engines.

The harness does not score pages itself. An AuditEngine attaches to the
browser started by the browser session (through its remote debugging port)
and returns the raw engine result plus an opaque HTML report.
"""

from abc import ABC, abstractmethod
import asyncio
import json
import logging
import tempfile
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from perf_harness.errors import AuditError
from perf_harness.models.perf_models import AuditSettings, FormFactor

logger = logging.getLogger(__name__)


class EngineResult(BaseModel):
    """Raw output of one audit engine run."""

    lhr: Dict[str, Any] = Field(description="Raw engine result")
    report_html: Optional[str] = Field(default=None, description="Rendered report")


class AuditEngine(ABC):
    """Interface for audit engines."""

    @abstractmethod
    async def audit(
        self, url: str, port: int, settings: AuditSettings
    ) -> EngineResult:
        """Audit ``url`` using the browser listening on ``port``.

        Raises:
            AuditError: If the engine fails
        """
        pass


class LighthouseEngine(AuditEngine):
    """Run the Lighthouse CLI as a subprocess against a running browser.

    PATTERN: The CLI is given ``--port`` so it reuses the browser that the
    pre-audit actions already warmed up instead of launching its own.
    """

    def __init__(self, executable: str = "lighthouse", timeout_s: float = 180.0):
        """Initialize the engine.

        Args:
            executable: Lighthouse CLI executable
            timeout_s: Maximum duration of one audit run
        """
        self.executable = executable
        self.timeout_s = timeout_s

    def build_command(self, url: str, port: int, settings: AuditSettings, output_path: Path) -> List[str]:
        """Build the Lighthouse command line."""
        is_mobile = settings.form_factor == FormFactor.MOBILE
        command = [
            self.executable,
            url,
            f"--port={port}",
            "--output=json",
            "--output=html",
            f"--output-path={output_path}",
            "--quiet",
            f"--only-categories={','.join(settings.only_categories)}",
            f"--form-factor={settings.form_factor.value}",
            f"--screenEmulation.mobile={'true' if is_mobile else 'false'}",
            f"--screenEmulation.width={settings.screen_width}",
            f"--screenEmulation.height={settings.screen_height}",
            f"--screenEmulation.deviceScaleFactor={settings.device_scale_factor:g}",
        ]
        for key, value in settings.throttling.items():
            command.append(f"--throttling.{key}={value:g}")
        command.extend(settings.extra_flags)
        return command

    async def audit(self, url: str, port: int, settings: AuditSettings) -> EngineResult:
        with tempfile.TemporaryDirectory(prefix="lighthouse-") as tmp_dir:
            output_path = Path(tmp_dir) / "audit"
            command = self.build_command(url, port, settings, output_path)
            logger.debug(f"Running audit engine: {' '.join(command)}")

            try:
                process = await asyncio.create_subprocess_exec(
                    *command,
                    stdout=asyncio.subprocess.PIPE,
                    stderr=asyncio.subprocess.PIPE,
                )
            except FileNotFoundError:
                raise AuditError(f"Audit engine executable not found: {self.executable}")

            try:
                _, stderr = await asyncio.wait_for(process.communicate(), self.timeout_s)
            except asyncio.TimeoutError:
                process.kill()
                await process.wait()
                raise AuditError(f"Audit of {url} timed out after {self.timeout_s}s")

            if process.returncode != 0:
                message = stderr.decode(errors="replace").strip()[-2000:]
                raise AuditError(
                    f"Audit engine exited with code {process.returncode}: {message}"
                )

            return self._read_outputs(output_path)

    @staticmethod
    def _read_outputs(output_path: Path) -> EngineResult:
        # Lighthouse appends .report.<ext> when several outputs are requested
        json_path = output_path.with_name(f"{output_path.name}.report.json")
        html_path = output_path.with_name(f"{output_path.name}.report.html")

        try:
            lhr = json.loads(json_path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise AuditError(f"Could not read audit engine output: {e}")

        report_html = None
        if html_path.exists():
            report_html = html_path.read_text(encoding="utf-8")
        else:
            logger.warning("Audit engine produced no HTML report")

        return EngineResult(lhr=lhr, report_html=report_html)
