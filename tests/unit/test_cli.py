"""Tests for the dreamhooks CLI."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from click.testing import CliRunner
from pydantic import ValidationError

from dreamhooks.cli import cli
from dreamhooks.webhooks.models import (
    AttemptOutcome,
    DeliveryAttempt,
    DeliveryResult,
    DeliveryStatus,
    SubscriptionResult,
)

KNOWN_SIGNATURE = "f7bc83f430538424b13298e6aa6fb143ef4d59a14946175997479dbc2d1a3cd8"
KNOWN_BODY = "The quick brown fox jumps over the lazy dog"


@pytest.fixture
def runner():
    """Create CLI test runner."""
    return CliRunner()


@pytest.fixture(autouse=True)
def no_logging_setup():
    with patch("dreamhooks.cli.setup_logging") as setup:
        yield setup


def make_result(status: DeliveryStatus, http_status: int) -> DeliveryResult:
    outcome = AttemptOutcome.SUCCESS if status == DeliveryStatus.SUCCESS else AttemptOutcome.FAILED_TERMINAL
    attempt = DeliveryAttempt(
        subscription_id="wh_1",
        event_id="evt_1",
        attempt_number=1,
        outcome=outcome,
        http_status=http_status,
    )
    return DeliveryResult(
        event_id="evt_1",
        results=[
            SubscriptionResult(
                subscription_id="wh_1",
                endpoint_url="http://localhost:3001/webhook",
                status=status,
                attempts=[attempt],
                error=None if status == DeliveryStatus.SUCCESS else "Delivery failed after 1 attempt(s): HTTP 500",
            )
        ],
    )


def mock_manager(result: DeliveryResult) -> MagicMock:
    manager = MagicMock()
    manager.__aenter__ = AsyncMock(return_value=manager)
    manager.__aexit__ = AsyncMock(return_value=None)
    manager.trigger = AsyncMock(return_value=result)
    return manager


class TestCLIBasics:
    """Test basic CLI functionality."""

    def test_version(self, runner):
        result = runner.invoke(cli, ["--version"])

        assert result.exit_code == 0
        assert "1.0.0" in result.output

    def test_help(self, runner):
        result = runner.invoke(cli, ["--help"])

        assert result.exit_code == 0
        assert "send" in result.output
        assert "serve-mock" in result.output

    @pytest.mark.parametrize("level", ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL", "critical"])
    def test_every_log_level_accepted(self, runner, monkeypatch, level):
        """Test any level the settings accept also works for the CLI."""
        monkeypatch.setenv("WEBHOOK_LOG_LEVEL", level)

        result = runner.invoke(cli, ["sign", "--secret", "key", "--body", KNOWN_BODY])

        assert result.exit_code == 0
        assert result.output.strip() == KNOWN_SIGNATURE

    def test_log_level_option(self, runner):
        result = runner.invoke(cli, ["--log-level", "critical", "sign", "--secret", "key", "--body", "x"])

        assert result.exit_code == 0


class TestSignCommands:
    """Tests for sign and verify."""

    def test_sign(self, runner):
        result = runner.invoke(cli, ["sign", "--secret", "key", "--body", KNOWN_BODY])

        assert result.exit_code == 0
        assert result.output.strip() == KNOWN_SIGNATURE

    def test_sign_from_stdin(self, runner):
        result = runner.invoke(cli, ["sign", "--secret", "key", "--file", "-"], input=KNOWN_BODY)

        assert result.exit_code == 0
        assert result.output.strip() == KNOWN_SIGNATURE

    def test_sign_requires_body(self, runner):
        result = runner.invoke(cli, ["sign", "--secret", "key"])

        assert result.exit_code == 2

    def test_verify_valid(self, runner):
        result = runner.invoke(
            cli,
            ["verify", "--secret", "key", "--signature", KNOWN_SIGNATURE, "--body", KNOWN_BODY],
        )

        assert result.exit_code == 0
        assert "Signature valid" in result.output

    def test_verify_mismatch(self, runner):
        result = runner.invoke(
            cli,
            ["verify", "--secret", "wrong", "--signature", KNOWN_SIGNATURE, "--body", KNOWN_BODY],
        )

        assert result.exit_code == 1
        assert "mismatch" in result.output


class TestSendCommand:
    """Tests for send."""

    def test_send_success(self, runner, no_logging_setup):
        manager = mock_manager(make_result(DeliveryStatus.SUCCESS, 200))

        with patch("dreamhooks.cli.WebhookManager", return_value=manager) as manager_cls:
            result = runner.invoke(
                cli,
                [
                    "send", "http://localhost:3001/webhook",
                    "-e", "dream_created",
                    "-p", '{"dream_id": "d1"}',
                    "-s", "s3cr3t",
                    "-a", "5",
                ],
            )

        assert result.exit_code == 0
        assert "Delivered: 1/1" in result.output
        manager.add_webhook.assert_called_once_with(
            "http://localhost:3001/webhook", ["dream_created"], secret="s3cr3t"
        )
        manager.trigger.assert_awaited_once_with("dream_created", {"dream_id": "d1"})
        settings = manager_cls.call_args[0][0]
        assert settings.max_attempts == 5
        no_logging_setup.assert_called_once()

    def test_send_failure_exit_code(self, runner):
        manager = mock_manager(make_result(DeliveryStatus.FAILED, 500))

        with patch("dreamhooks.cli.WebhookManager", return_value=manager):
            result = runner.invoke(cli, ["send", "http://localhost:3001/webhook"])

        assert result.exit_code == 1
        assert "Delivered: 0/1" in result.output

    def test_send_json_output(self, runner):
        manager = mock_manager(make_result(DeliveryStatus.SUCCESS, 200))

        with patch("dreamhooks.cli.WebhookManager", return_value=manager):
            result = runner.invoke(cli, ["-o", "json", "send", "http://localhost:3001/webhook"])

        assert result.exit_code == 0
        assert '"succeeded": 1' in result.output

    def test_send_invalid_configuration(self, runner, monkeypatch):
        """Test bad settings from the environment exit cleanly with status 1."""
        monkeypatch.setenv("WEBHOOK_MAX_ATTEMPTS", "0")

        with patch("dreamhooks.cli.WebhookManager") as manager_cls:
            result = runner.invoke(cli, ["send", "http://localhost:3001/webhook"])

        assert result.exit_code == 1
        assert "Invalid configuration" in result.output
        assert "max_attempts" in result.output
        assert not isinstance(result.exception, ValidationError)
        manager_cls.assert_not_called()

    def test_serve_mock_invalid_configuration(self, runner, monkeypatch):
        monkeypatch.setenv("WEBHOOK_LOG_FORMAT", "xml")

        with patch("dreamhooks.cli.MockWebhookServer") as server_cls:
            result = runner.invoke(cli, ["serve-mock"])

        assert result.exit_code == 1
        assert "Invalid configuration" in result.output
        server_cls.assert_not_called()

    def test_send_invalid_payload(self, runner):
        with patch("dreamhooks.cli.WebhookManager") as manager_cls:
            result = runner.invoke(cli, ["send", "http://localhost:3001/webhook", "-p", "{not json"])

        assert result.exit_code == 1
        assert "Invalid JSON" in result.output
        manager_cls.assert_not_called()
