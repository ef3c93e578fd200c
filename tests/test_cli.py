"""
Tests for the typer CLI.

Run with: pytest tests/test_cli.py -v
"""

import json
from unittest.mock import patch

import pytest
from typer.testing import CliRunner

from solarscope.analysis.fusion import FusionEngine
from solarscope.cli import app
from solarscope.core.errors import ErrorCode, describe

from .conftest import SITE_LAT, SITE_LNG

runner = CliRunner()


@pytest.fixture
def record(site, footprint_found, irradiation_measured):
    return FusionEngine().fuse(site, footprint_found, irradiation_measured, analysis_id="cli-1")


class TestErrorsCommand:

    def test_lists_every_code(self):
        result = runner.invoke(app, ["errors"])
        assert result.exit_code == 0
        assert "FOOTPRINT_TIMEOUT" in result.output
        assert "INSUFFICIENT_CREDITS" in result.output

    def test_single_code(self):
        result = runner.invoke(app, ["errors", "AUTH_EXPIRED"])
        assert result.exit_code == 0
        assert "login" in result.output

    def test_unknown_code(self):
        result = runner.invoke(app, ["errors", "NOPE"])
        assert result.exit_code == 1


class TestAnalyzeCommand:
    """Tests for `solarscope analyze`."""

    def test_requires_location(self):
        result = runner.invoke(app, ["analyze"])
        assert result.exit_code == 2

    def test_invalid_latitude(self):
        result = runner.invoke(app, ["analyze", "--lat=95", "--lng=-46"])
        assert result.exit_code == 2
        assert "Invalid latitude" in result.output

    def test_success(self, record, tmp_path):
        output = tmp_path / "analysis.json"
        with patch("solarscope.cli.AnalysisService") as service_cls:
            service_cls.return_value.analyze.return_value = record
            service_cls.respond.return_value = {"success": True, "data": {"id": "cli-1"}}

            result = runner.invoke(app, [
                "analyze", f"--lat={SITE_LAT}", f"--lng={SITE_LNG}", "-o", str(output),
            ])

        assert result.exit_code == 0, result.output
        assert record.verdict.value in result.output
        assert json.loads(output.read_text())["data"]["id"] == "cli-1"

    def test_financial_options(self, record):
        with patch("solarscope.cli.AnalysisService") as service_cls:
            service_cls.return_value.analyze.return_value = record

            result = runner.invoke(app, [
                "analyze", f"--lat={SITE_LAT}", f"--lng={SITE_LNG}", "--energy-cost=0.95", "--cost-per-watt=4.5",
            ])

        assert result.exit_code == 0, result.output
        request = service_cls.return_value.analyze.call_args.args[0]
        assert request.financial.energy_cost_per_kwh == 0.95
        assert request.financial.installation_cost_per_watt == 4.5

    def test_financial_options_need_both_costs(self):
        result = runner.invoke(app, ["analyze", f"--lat={SITE_LAT}", f"--lng={SITE_LNG}", "--energy-cost=0.95"])
        assert result.exit_code == 2
        assert "--cost-per-watt" in result.output

    def test_error_outcome(self):
        with patch("solarscope.cli.AnalysisService") as service_cls:
            service_cls.return_value.analyze.return_value = describe(ErrorCode.INSUFFICIENT_CREDITS)

            result = runner.invoke(app, ["analyze", "--address", "Av. Paulista 1000, São Paulo"])

        assert result.exit_code == 1
        assert "buy_credits" in result.output
        # not retryable
        assert service_cls.return_value.analyze.call_count == 1


class TestVersionCommand:

    def test_version(self):
        result = runner.invoke(app, ["version"])
        assert result.exit_code == 0
        assert "SolarScope v1.0.0" in result.output
