"""Tests for notification channels and transports."""

from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from alert_service.alerts.channels import (
    AiohttpWebhookTransport,
    ChannelFactory,
    ChannelType,
    ConsoleChannel,
    DeliveryOutcome,
    EmailChannel,
    NotificationChannel,
    NotificationChannelConfig,
    NotificationPayload,
    NotificationResult,
    SmtpEmailTransport,
    WebhookChannel,
)
from alert_service.core.exceptions import ConfigurationError, UnsupportedChannelError


def _config(channel_type: str, **config: Any) -> NotificationChannelConfig:
    return NotificationChannelConfig(
        id=f"{channel_type}-1", name=channel_type.title(), type=channel_type, config=config
    )


def _mock_session(status: int, text: str) -> MagicMock:
    mock_response = AsyncMock()
    mock_response.status = status
    mock_response.text = AsyncMock(return_value=text)

    mock_post = MagicMock()
    mock_post.__aenter__ = AsyncMock(return_value=mock_response)
    mock_post.__aexit__ = AsyncMock(return_value=None)

    mock_session = MagicMock()
    mock_session.post = MagicMock(return_value=mock_post)
    mock_session.__aenter__ = AsyncMock(return_value=mock_session)
    mock_session.__aexit__ = AsyncMock(return_value=None)
    return mock_session


class TestNotificationChannelConfig:
    """Tests for NotificationChannelConfig."""

    def test_enum_type_is_normalized(self) -> None:
        config = NotificationChannelConfig(id="c", name="C", type=ChannelType.CONSOLE)

        assert config.type == "console"
        assert config.enabled
        assert config.config == {}


class TestNotificationPayload:
    """Tests for NotificationPayload."""

    def test_iso_timestamp(self, sample_payload: NotificationPayload) -> None:
        assert sample_payload.iso_timestamp == "2023-11-14T22:13:20+00:00"

    def test_to_dict(self, sample_payload: NotificationPayload) -> None:
        result = sample_payload.to_dict()

        assert result["rule"]["id"] == "high-cpu"
        assert result["severity"] == "critical"
        assert result["timestamp"] == 1_700_000_000_000
        assert result["metadata"] == {}


class TestConsoleChannel:
    """Tests for ConsoleChannel."""

    @pytest.mark.asyncio
    async def test_console_writes_to_sink(self, sample_payload: NotificationPayload) -> None:
        """Test the formatted line is written to the sink."""
        lines: list[str] = []
        channel = ConsoleChannel(_config("console"), sink=lines.append)

        result = await channel.send(sample_payload)

        assert result.success
        assert result.channel_id == "console-1"
        assert result.error is None
        assert lines == [
            "[ALERT CRITICAL] High CPU @ 2023-11-14T22:13:20+00:00: "
            "Alert 'High CPU' triggered: cpu > 80 (actual: 90.00)"
        ]

    @pytest.mark.asyncio
    async def test_console_logs_without_sink(
        self, sample_payload: NotificationPayload, caplog: pytest.LogCaptureFixture
    ) -> None:
        """Test console output falls back to logging at a severity level."""
        channel = ConsoleChannel(_config("console"))

        with caplog.at_level("INFO", logger="alert_service.alerts.channels"):
            result = await channel.send(sample_payload)

        assert result.success
        assert any(
            r.levelname == "ERROR" and "[ALERT CRITICAL]" in r.getMessage() for r in caplog.records
        )

    @pytest.mark.asyncio
    async def test_disabled_channel_does_not_deliver(
        self, sample_payload: NotificationPayload
    ) -> None:
        lines: list[str] = []
        config = NotificationChannelConfig(id="c", name="C", type="console", enabled=False)
        channel = ConsoleChannel(config, sink=lines.append)

        result = await channel.send(sample_payload)

        assert not result.success
        assert result.error == "Channel is disabled"
        assert lines == []


class TestWebhookChannel:
    """Tests for WebhookChannel."""

    @pytest.mark.asyncio
    async def test_webhook_without_url_fails(
        self, sample_payload: NotificationPayload, make_transport: type
    ) -> None:
        """Test a webhook without url reports failure instead of raising."""
        transport = make_transport()
        channel = WebhookChannel(_config("webhook"), transport=transport)

        result = await channel.send(sample_payload)

        assert not result.success
        assert result.error == "Webhook URL not configured"
        assert transport.deliveries == []

    @pytest.mark.asyncio
    async def test_webhook_delivers_to_url(
        self, sample_payload: NotificationPayload, make_transport: type
    ) -> None:
        transport = make_transport(success=True, detail="HTTP 200")
        channel = WebhookChannel(
            _config("webhook", url="https://hooks.example.com/a"), transport=transport
        )

        result = await channel.send(sample_payload)

        assert result.success
        assert transport.deliveries == [("https://hooks.example.com/a", sample_payload)]

    @pytest.mark.asyncio
    async def test_webhook_transport_failure(
        self, sample_payload: NotificationPayload, make_transport: type
    ) -> None:
        transport = make_transport(success=False, detail="HTTP 500: boom")
        channel = WebhookChannel(_config("webhook", url="https://x"), transport=transport)

        result = await channel.send(sample_payload)

        assert not result.success
        assert result.error == "HTTP 500: boom"

    @pytest.mark.asyncio
    async def test_webhook_transport_exception(self, sample_payload: NotificationPayload) -> None:
        """Test exceptions raised by the transport become failed results."""
        transport = MagicMock()
        transport.deliver = AsyncMock(side_effect=ConnectionError("refused"))
        channel = WebhookChannel(_config("webhook", url="https://x"), transport=transport)

        result = await channel.send(sample_payload)

        assert not result.success
        assert "refused" in result.error

    @pytest.mark.asyncio
    async def test_webhook_timeout(self, sample_payload: NotificationPayload) -> None:
        transport = MagicMock()
        transport.deliver = AsyncMock(side_effect=TimeoutError())
        channel = WebhookChannel(_config("webhook", url="https://x"), transport=transport)

        result = await channel.send(sample_payload)

        assert not result.success
        assert "timed out" in result.error


class TestAiohttpWebhookTransport:
    """Tests for AiohttpWebhookTransport."""

    @pytest.mark.asyncio
    async def test_post_success(self, sample_payload: NotificationPayload) -> None:
        """Test a 2xx response is a successful delivery."""
        transport = AiohttpWebhookTransport(headers={"X-Token": "abc"})

        with patch("alert_service.alerts.channels.aiohttp.ClientSession") as mock_session_class:
            mock_session = _mock_session(204, "")
            mock_session_class.return_value = mock_session

            outcome = await transport.deliver("https://hooks.example.com/a", sample_payload)

            assert outcome.success
            assert outcome.detail == "HTTP 204"
            call_args = mock_session.post.call_args
            assert call_args.args[0] == "https://hooks.example.com/a"
            assert call_args.kwargs["json"]["rule"]["id"] == "high-cpu"
            assert call_args.kwargs["headers"]["X-Token"] == "abc"

    @pytest.mark.asyncio
    async def test_post_failure(self, sample_payload: NotificationPayload) -> None:
        """Test a non-2xx response is a failed delivery with the body excerpt."""
        transport = AiohttpWebhookTransport()

        with patch("alert_service.alerts.channels.aiohttp.ClientSession") as mock_session_class:
            mock_session_class.return_value = _mock_session(500, "Internal Server Error")

            outcome = await transport.deliver("https://x", sample_payload)

            assert not outcome.success
            assert outcome.detail == "HTTP 500: Internal Server Error"

    @pytest.mark.asyncio
    async def test_channel_uses_aiohttp_by_default(
        self, sample_payload: NotificationPayload
    ) -> None:
        channel = WebhookChannel(_config("webhook", url="https://x"))

        with patch("alert_service.alerts.channels.aiohttp.ClientSession") as mock_session_class:
            mock_session_class.return_value = _mock_session(200, "ok")

            result = await channel.send(sample_payload)

            assert result.success


class TestEmailChannel:
    """Tests for EmailChannel."""

    @pytest.mark.asyncio
    async def test_email_without_recipient_fails(
        self, sample_payload: NotificationPayload, make_transport: type
    ) -> None:
        transport = make_transport()
        channel = EmailChannel(_config("email"), transport=transport)

        result = await channel.send(sample_payload)

        assert not result.success
        assert result.error == "Email recipient not configured"
        assert transport.deliveries == []

    @pytest.mark.asyncio
    async def test_email_recipient_list(
        self, sample_payload: NotificationPayload, make_transport: type
    ) -> None:
        """Test a list of recipients is joined into one target."""
        transport = make_transport()
        channel = EmailChannel(
            _config("email", to=["ops@example.com", "sre@example.com"]), transport=transport
        )

        result = await channel.send(sample_payload)

        assert result.success
        assert transport.deliveries[0][0] == "ops@example.com, sre@example.com"

    @pytest.mark.asyncio
    async def test_smtp_transport_sends(self, sample_payload: NotificationPayload) -> None:
        """Test the SMTP transport builds and sends a multipart message."""
        transport = SmtpEmailTransport(smtp_host="smtp.example.com", smtp_port=587, use_tls=True)

        with patch(
            "alert_service.alerts.channels.aiosmtplib.send", new_callable=AsyncMock
        ) as mock_send:
            outcome = await transport.deliver("a@example.com, b@example.com", sample_payload)

            assert outcome.success
            assert outcome.detail == "Sent to 2 recipients"
            message = mock_send.call_args.args[0]
            assert message["Subject"] == "[CRITICAL] High CPU"
            assert message["To"] == "a@example.com, b@example.com"
            assert mock_send.call_args.kwargs["hostname"] == "smtp.example.com"
            assert mock_send.call_args.kwargs["start_tls"] is True

    @pytest.mark.asyncio
    async def test_smtp_error_is_reported(self, sample_payload: NotificationPayload) -> None:
        channel = EmailChannel(_config("email", to="ops@example.com"))

        with patch(
            "alert_service.alerts.channels.aiosmtplib.send",
            new_callable=AsyncMock,
            side_effect=OSError("connection refused"),
        ):
            result = await channel.send(sample_payload)

        assert not result.success
        assert "connection refused" in result.error


class TestChannelFactory:
    """Tests for ChannelFactory."""

    @pytest.mark.parametrize(
        ("channel_type", "expected"),
        [("console", ConsoleChannel), ("webhook", WebhookChannel), ("email", EmailChannel)],
    )
    def test_create_builtin(self, channel_type: str, expected: type) -> None:
        channel = ChannelFactory.create(_config(channel_type))

        assert isinstance(channel, expected)
        assert channel.type == channel_type

    def test_unknown_type_is_rejected(self) -> None:
        """Test registering a bogus channel type fails at creation."""
        with pytest.raises(UnsupportedChannelError) as exc_info:
            ChannelFactory.create(_config("bogus"))

        assert exc_info.value.channel_type == "bogus"
        assert isinstance(exc_info.value, ConfigurationError)

    def test_transport_overrides(self, make_transport: type) -> None:
        webhook_transport = make_transport()
        email_transport = make_transport()

        webhook = ChannelFactory.create(
            _config("webhook"), webhook_transport=webhook_transport
        )
        email = ChannelFactory.create(_config("email"), email_transport=email_transport)

        assert webhook.transport is webhook_transport
        assert email.transport is email_transport

    @pytest.mark.asyncio
    async def test_register_custom_type(self, sample_payload: NotificationPayload) -> None:
        """Test additional channel types can be registered."""

        class PagerChannel(NotificationChannel):
            async def _send(self, payload: NotificationPayload) -> NotificationResult:
                return self._result(True)

        ChannelFactory.register("pager", PagerChannel)
        try:
            channel = ChannelFactory.create(_config("pager"))
            assert "pager" in ChannelFactory.supported_types()
            assert (await channel.send(sample_payload)).success
        finally:
            ChannelFactory._registry.pop("pager", None)

    def test_delivery_outcome_defaults(self) -> None:
        assert DeliveryOutcome(success=True).detail == ""
