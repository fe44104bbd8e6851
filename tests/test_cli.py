"""Tests for the command line interface."""

import json
from unittest.mock import patch

import pytest
from click.testing import CliRunner

from dive_inspector import __version__
from dive_inspector.cli import create_size_bar, efficiency_style, main
from dive_inspector.exceptions import ImagePullError
from dive_inspector.inspection import InspectionService
from tests.helpers import FakeAnalyzer

QUIET = {"DIVE_INSPECTOR_LOG_LEVEL": "ERROR"}


@pytest.fixture
def runner():
    return CliRunner()


def make_service(docker_client, relay, **analyzer_kwargs):
    return InspectionService(docker_client, FakeAnalyzer(**analyzer_kwargs), relay)


class TestHelpers:
    def test_create_size_bar(self):
        assert create_size_bar(50, 100, width=10) == "█" * 5 + "░" * 5
        assert create_size_bar(1, 0) == ""

    def test_efficiency_style(self):
        assert efficiency_style(99.0) == "green"
        assert efficiency_style(85.0) == "yellow"
        assert efficiency_style(40.0) == "red"


class TestAnalyzeCommand:
    def test_rich_output(self, runner, docker_client, relay):
        service = make_service(docker_client, relay)

        with patch("dive_inspector.cli.build_service", return_value=service):
            result = runner.invoke(main, ["analyze", "--image", "nginx:latest", "--suggestions"], env=QUIET)

        assert result.exit_code == 0
        assert "nginx:latest" in result.output
        assert "Layer Breakdown" in result.output
        assert "Use .dockerignore" in result.output
        assert "Analysis completed!" in result.output

    def test_json_output(self, runner, docker_client, relay):
        service = make_service(docker_client, relay)

        with patch("dive_inspector.cli.build_service", return_value=service):
            result = runner.invoke(main, ["analyze", "-i", "nginx", "--output", "json"], env=QUIET)

        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["image_name"] == "nginx"
        assert data["summary"]["efficiency"] == 90.0
        assert len(data["layers"]) == 2
        assert "suggestions" not in data

    def test_json_output_options(self, runner, docker_client, relay):
        service = make_service(docker_client, relay)

        with patch("dive_inspector.cli.build_service", return_value=service):
            result = runner.invoke(
                main, ["analyze", "-i", "nginx", "-o", "json", "--no-layers", "--suggestions"], env=QUIET
            )

        data = json.loads(result.output)
        assert "layers" not in data
        assert data["suggestions"]

    def test_timeout_override(self, runner, docker_client, relay):
        service = make_service(docker_client, relay)

        with patch("dive_inspector.cli.build_service", return_value=service) as build:
            runner.invoke(main, ["analyze", "-i", "nginx", "-o", "json", "--timeout", "42"], env=QUIET)

        assert build.call_args[0][0].analysis_timeout == 42.0

    def test_invalid_image(self, runner, docker_client, relay):
        service = make_service(docker_client, relay)

        with patch("dive_inspector.cli.build_service", return_value=service):
            result = runner.invoke(main, ["analyze", "-i", "bad image"], env=QUIET)

        assert result.exit_code == 1
        assert "Invalid image name" in result.output

    def test_analysis_failure(self, runner, docker_client, relay):
        docker_client.image_exists.return_value = False
        docker_client.pull_image.side_effect = ImagePullError("toomanyrequests")
        service = make_service(docker_client, relay)

        with patch("dive_inspector.cli.build_service", return_value=service):
            result = runner.invoke(main, ["analyze", "-i", "nginx"], env=QUIET)

        assert result.exit_code == 1
        assert "Failed to analyze nginx" in result.output

    def test_requires_image(self, runner):
        result = runner.invoke(main, ["analyze"])

        assert result.exit_code != 0
        assert "Missing option" in result.output


class TestHealthCommand:
    def test_healthy(self, runner, docker_client, relay):
        service = make_service(docker_client, relay)

        with patch("dive_inspector.cli.build_service", return_value=service):
            result = runner.invoke(main, ["health", "--output", "json"], env=QUIET)

        assert result.exit_code == 0
        assert json.loads(result.output)["status"] == "healthy"

    def test_unhealthy(self, runner, docker_client, relay):
        service = make_service(docker_client, relay, available=False)

        with patch("dive_inspector.cli.build_service", return_value=service):
            result = runner.invoke(main, ["health"], env=QUIET)

        assert result.exit_code == 1
        assert "Dependencies" in result.output


class TestServeCommand:
    def test_runs_uvicorn(self, runner):
        with patch("dive_inspector.cli.uvicorn.run") as run:
            result = runner.invoke(main, ["serve", "--port", "8080"], env=QUIET)

        assert result.exit_code == 0
        run.assert_called_once()
        args, kwargs = run.call_args
        assert args[0] == "dive_inspector.server:create_app"
        assert kwargs["factory"] is True
        assert kwargs["port"] == 8080
        assert kwargs["host"] == "0.0.0.0"

    def test_invalid_config(self, runner):
        with patch("dive_inspector.cli.uvicorn.run") as run:
            result = runner.invoke(main, ["serve"], env={"DIVE_INSPECTOR_PORT": "abc"})

        assert result.exit_code == 1
        assert "must be a number" in result.output
        run.assert_not_called()


def test_version(runner):
    result = runner.invoke(main, ["--version"])

    assert result.exit_code == 0
    assert __version__ in result.output
