"""Tests for the Tunnelgate CLI."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

from click.testing import CliRunner

from tunnelgate.cli import main
from tunnelgate.core.exceptions import InvalidTokenError, TransportError


class TestCLIBasics:
    """Basic CLI tests."""

    def test_main_with_help(self):
        """Test --help shows help message."""
        runner = CliRunner()
        result = runner.invoke(main, ["--help"])

        assert result.exit_code == 0
        assert "Tunnelgate" in result.output
        assert "run" in result.output
        assert "verify-token" in result.output

    def test_version_command(self):
        """Test version command."""
        runner = CliRunner()
        result = runner.invoke(main, ["version"])

        assert result.exit_code == 0
        assert "Version:" in result.output
        assert "Python:" in result.output


class TestConfigCommand:
    """Tests for the config command."""

    def test_shows_settings(self):
        """Test effective settings are printed."""
        runner = CliRunner()
        result = runner.invoke(main, ["config"])

        assert result.exit_code == 0
        assert "controller_name" in result.output
        assert "requeue_interval" in result.output

    def test_config_file(self, tmp_path):
        """Test values from --config override defaults."""
        path = tmp_path / "tunnelgate.yaml"
        path.write_text("requeue_interval: 15\n")

        runner = CliRunner()
        result = runner.invoke(main, ["--config", str(path), "config"])

        assert result.exit_code == 0
        assert "Loaded config from" in result.output
        assert "15.0" in result.output

    def test_bad_config_file(self, tmp_path):
        """Test a broken config file exits with an error."""
        path = tmp_path / "tunnelgate.yaml"
        path.write_text("a: [1\n")

        runner = CliRunner()
        result = runner.invoke(main, ["--config", str(path), "config"])

        assert result.exit_code == 1
        assert "Failed to load config" in result.output


class TestVerifyTokenCommand:
    """Tests for the verify-token command."""

    def test_valid_token(self):
        """Test a valid token reports success."""
        runner = CliRunner()
        with patch(
            "tunnelgate.controller.validator.verify_token", new_callable=AsyncMock
        ) as mock_verify:
            result = runner.invoke(main, ["verify-token", "--api-token", "tok"])

        assert result.exit_code == 0
        assert "Token is valid" in result.output
        assert mock_verify.call_args.args[1:] == ("tok", "")

    def test_rejected_token(self):
        """Test a rejected token exits with 1."""
        runner = CliRunner()
        with patch(
            "tunnelgate.controller.validator.verify_token",
            new_callable=AsyncMock,
            side_effect=InvalidTokenError(),
        ):
            result = runner.invoke(main, ["verify-token", "--api-token", "tok"])

        assert result.exit_code == 1
        assert "Token rejected" in result.output

    def test_unreachable(self):
        """Test a transport failure exits with 2."""
        runner = CliRunner()
        with patch(
            "tunnelgate.controller.validator.verify_token",
            new_callable=AsyncMock,
            side_effect=TransportError("verify token", "timed out"),
        ):
            result = runner.invoke(main, ["verify-token", "--api-token", "tok"])

        assert result.exit_code == 2
        assert "Error contacting Cloudflare" in result.output

    def test_token_from_env(self):
        """Test the token can come from TUNNELGATE_API_TOKEN."""
        runner = CliRunner()
        with patch(
            "tunnelgate.controller.validator.verify_token", new_callable=AsyncMock
        ) as mock_verify:
            result = runner.invoke(
                main, ["verify-token"], env={"TUNNELGATE_API_TOKEN": "from-env"}
            )

        assert result.exit_code == 0
        assert mock_verify.call_args.args[1] == "from-env"


class TestRunCommand:
    """Tests for the run command."""

    def test_starts_operator(self):
        """Test run wires the handlers and starts kopf cluster-wide."""
        runner = CliRunner()
        with (
            patch("tunnelgate.cluster.store.KubernetesStore.from_environment") as mock_store,
            patch("tunnelgate.observability.metrics.start_metrics_server") as mock_metrics,
            patch("kopf.run") as mock_run,
        ):
            mock_store.return_value = MagicMock()
            result = runner.invoke(main, ["run", "--metrics-port", "9100"])

        assert result.exit_code == 0, result.output
        mock_metrics.assert_called_once_with(9100)
        kwargs = mock_run.call_args.kwargs
        assert kwargs["clusterwide"] is True
        assert kwargs["standalone"] is True
        assert kwargs["registry"] is not None

    def test_namespaced(self):
        """Test --namespace restricts the watch and 0 disables metrics."""
        runner = CliRunner()
        with (
            patch("tunnelgate.cluster.store.KubernetesStore.from_environment"),
            patch("tunnelgate.observability.metrics.start_metrics_server") as mock_metrics,
            patch("kopf.run") as mock_run,
        ):
            result = runner.invoke(main, ["run", "--metrics-port", "0", "-n", "apps"])

        assert result.exit_code == 0, result.output
        mock_metrics.assert_not_called()
        kwargs = mock_run.call_args.kwargs
        assert kwargs["clusterwide"] is False
        assert kwargs["namespaces"] == ["apps"]
