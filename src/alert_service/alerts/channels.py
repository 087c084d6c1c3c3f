"""Notification Channels - Deliver fired alerts to external sinks.

This module provides the notification channels an alert rule can target:
- Console output (for development)
- Webhook (generic HTTP POST via aiohttp)
- Email (SMTP via aiosmtplib)

Channels never raise from ``send``; every failure is reported as a
NotificationResult with ``success=False``. The factory rejects unknown
channel types when the channel is registered.
"""

import logging
from abc import ABC, abstractmethod
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from enum import Enum
from typing import Any, ClassVar, Protocol

import aiohttp
import aiosmtplib

from alert_service.alerts.rules import AlertRule, AlertSeverity, now_ms
from alert_service.core.exceptions import UnsupportedChannelError

logger = logging.getLogger(__name__)


class ChannelType(Enum):
    """Built-in notification channel types."""

    WEBHOOK = "webhook"
    EMAIL = "email"
    CONSOLE = "console"


@dataclass(frozen=True)
class NotificationChannelConfig:
    """Registration record of a notification channel."""

    id: str
    name: str
    type: str
    enabled: bool = True
    config: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        channel_type = self.type.value if isinstance(self.type, ChannelType) else str(self.type)
        object.__setattr__(self, "type", channel_type)
        object.__setattr__(self, "config", dict(self.config))


@dataclass(frozen=True)
class NotificationPayload:
    """Payload handed to every channel for a fired alert."""

    rule: AlertRule
    severity: AlertSeverity
    message: str
    timestamp: float
    metadata: Mapping[str, Any] = field(default_factory=dict)

    @property
    def iso_timestamp(self) -> str:
        return datetime.fromtimestamp(self.timestamp / 1000, tz=UTC).isoformat()

    def to_dict(self) -> dict[str, Any]:
        """Convert payload to the dictionary shape sent to transports.

        Returns:
            Dictionary with rule, severity, message, timestamp and metadata.
        """
        return {
            "rule": self.rule.to_dict(),
            "severity": self.severity.value,
            "message": self.message,
            "timestamp": self.timestamp,
            "metadata": dict(self.metadata),
        }


@dataclass(frozen=True)
class NotificationResult:
    """Result of a delivery attempt on one channel."""

    success: bool
    channel_id: str
    timestamp: float = field(default_factory=now_ms)
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "channel_id": self.channel_id,
            "timestamp": self.timestamp,
            "error": self.error,
        }


@dataclass(frozen=True)
class DeliveryOutcome:
    """Outcome reported by a transport collaborator."""

    success: bool
    detail: str = ""


class WebhookTransport(Protocol):
    """Delivers a payload to an HTTP endpoint."""

    async def deliver(self, target: str, payload: NotificationPayload) -> DeliveryOutcome:
        ...


class EmailTransport(Protocol):
    """Delivers a payload to one or more mail recipients."""

    async def deliver(self, target: str, payload: NotificationPayload) -> DeliveryOutcome:
        ...


class AiohttpWebhookTransport:
    """POST the JSON payload with aiohttp; any 2xx status is a success."""

    def __init__(self, headers: Mapping[str, str] | None = None, timeout: float = 10) -> None:
        """Initialize the transport.

        Args:
            headers: Extra HTTP headers.
            timeout: Request timeout in seconds.
        """
        self.headers = dict(headers or {})
        self.timeout = timeout

    async def deliver(self, target: str, payload: NotificationPayload) -> DeliveryOutcome:
        async with aiohttp.ClientSession() as session:
            async with session.post(
                target,
                json=payload.to_dict(),
                headers={
                    "Content-Type": "application/json",
                    **self.headers,
                },
                timeout=aiohttp.ClientTimeout(total=self.timeout),
            ) as response:
                response_text = await response.text()
                success = 200 <= response.status < 300
                detail = f"HTTP {response.status}"
                if not success and response_text:
                    detail = f"{detail}: {response_text[:200]}"
                return DeliveryOutcome(success=success, detail=detail)


class SmtpEmailTransport:
    """Send a plain text + HTML email with aiosmtplib."""

    def __init__(
        self,
        smtp_host: str = "localhost",
        smtp_port: int = 25,
        username: str | None = None,
        password: str | None = None,
        from_email: str = "alerts@localhost",
        use_tls: bool = False,
    ) -> None:
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port
        self.username = username
        self.password = password
        self.from_email = from_email
        self.use_tls = use_tls

    async def deliver(self, target: str, payload: NotificationPayload) -> DeliveryOutcome:
        recipients = [addr.strip() for addr in target.split(",") if addr.strip()]

        msg = MIMEMultipart("alternative")
        msg["Subject"] = self._build_subject(payload)
        msg["From"] = self.from_email
        msg["To"] = ", ".join(recipients)
        msg.attach(MIMEText(self._build_text_content(payload), "plain"))
        msg.attach(MIMEText(self._build_html_content(payload), "html"))

        await aiosmtplib.send(
            msg,
            hostname=self.smtp_host,
            port=self.smtp_port,
            username=self.username,
            password=self.password,
            start_tls=self.use_tls,
        )
        return DeliveryOutcome(success=True, detail=f"Sent to {len(recipients)} recipients")

    def _build_subject(self, payload: NotificationPayload) -> str:
        return f"[{payload.severity.value.upper()}] {payload.rule.name}"

    def _build_text_content(self, payload: NotificationPayload) -> str:
        return f"""
Alert: {payload.rule.name}
Severity: {payload.severity.value.upper()}

Message: {payload.message}

Timestamp: {payload.iso_timestamp}
"""

    def _build_html_content(self, payload: NotificationPayload) -> str:
        severity_colors = {
            AlertSeverity.INFO: "#28a745",
            AlertSeverity.WARNING: "#ffc107",
            AlertSeverity.CRITICAL: "#dc3545",
        }
        color = severity_colors.get(payload.severity, "#6c757d")

        return f"""
<!DOCTYPE html>
<html>
<body>
    <div style="border: 2px solid {color}; border-radius: 8px; padding: 20px; max-width: 600px;">
        <h2 style="color: {color};">{payload.rule.name}</h2>
        <span>{payload.severity.value.upper()}</span>
        <p><strong>Message:</strong> {payload.message}</p>
        <p style="color: #6c757d; font-size: 12px;">Timestamp: {payload.iso_timestamp}</p>
    </div>
</body>
</html>
"""


class NotificationChannel(ABC):
    """Abstract base class for notification channels."""

    def __init__(self, config: NotificationChannelConfig) -> None:
        """Initialize the channel.

        Args:
            config: Channel registration record.
        """
        self.config = config

    @property
    def id(self) -> str:
        return self.config.id

    @property
    def name(self) -> str:
        return self.config.name

    @property
    def type(self) -> str:
        return self.config.type

    @property
    def enabled(self) -> bool:
        return self.config.enabled

    async def send(self, payload: NotificationPayload) -> NotificationResult:
        """Send a notification.

        Args:
            payload: Alert payload.

        Returns:
            NotificationResult; never raises.
        """
        if not self.enabled:
            return self._result(False, "Channel is disabled")

        try:
            return await self._send(payload)
        except TimeoutError:
            return self._result(False, f"{self.type} delivery timed out")
        except Exception as e:
            logger.exception(f"Failed to send {self.type} notification on {self.id}: {e}")
            return self._result(False, f"Failed to send: {e!s}")

    @abstractmethod
    async def _send(self, payload: NotificationPayload) -> NotificationResult:
        """Deliver the payload; exceptions are converted by ``send``."""

    def _result(self, success: bool, error: str | None = None) -> NotificationResult:
        return NotificationResult(success=success, channel_id=self.id, error=error)


class ConsoleChannel(NotificationChannel):
    """Console channel for development and debugging.

    By default lines go to the module logger at a level matching the alert
    severity; pass ``sink`` to write them elsewhere.
    """

    _LEVELS: ClassVar[dict[AlertSeverity, int]] = {
        AlertSeverity.INFO: logging.INFO,
        AlertSeverity.WARNING: logging.WARNING,
        AlertSeverity.CRITICAL: logging.ERROR,
    }

    def __init__(
        self,
        config: NotificationChannelConfig,
        sink: Callable[[str], None] | None = None,
    ) -> None:
        super().__init__(config)
        self._sink = sink

    async def _send(self, payload: NotificationPayload) -> NotificationResult:
        line = (
            f"[ALERT {payload.severity.value.upper()}] {payload.rule.name} "
            f"@ {payload.iso_timestamp}: {payload.message}"
        )
        if self._sink is not None:
            self._sink(line)
        else:
            logger.log(self._LEVELS.get(payload.severity, logging.INFO), line)
        return self._result(True)


class WebhookChannel(NotificationChannel):
    """Webhook channel; requires ``url`` in the channel config.

    Example:
        >>> channel = WebhookChannel(
        ...     NotificationChannelConfig(
        ...         id="ops-hook",
        ...         name="Ops webhook",
        ...         type="webhook",
        ...         config={"url": "https://api.example.com/alerts"},
        ...     )
        ... )
        >>> result = await channel.send(payload)
    """

    def __init__(
        self,
        config: NotificationChannelConfig,
        transport: WebhookTransport | None = None,
    ) -> None:
        super().__init__(config)
        self.transport = transport or AiohttpWebhookTransport(
            headers=config.config.get("headers"),
            timeout=config.config.get("timeout", 10),
        )

    async def _send(self, payload: NotificationPayload) -> NotificationResult:
        url = self.config.config.get("url")
        if not url:
            return self._result(False, "Webhook URL not configured")

        outcome = await self.transport.deliver(str(url), payload)
        if outcome.success:
            return self._result(True)
        return self._result(False, outcome.detail or "Webhook delivery failed")


class EmailChannel(NotificationChannel):
    """Email channel; requires a ``to`` recipient (string or list)."""

    def __init__(
        self,
        config: NotificationChannelConfig,
        transport: EmailTransport | None = None,
    ) -> None:
        super().__init__(config)
        settings = config.config
        self.transport = transport or SmtpEmailTransport(
            smtp_host=settings.get("smtp_host", "localhost"),
            smtp_port=int(settings.get("smtp_port", 25)),
            username=settings.get("username"),
            password=settings.get("password"),
            from_email=settings.get("from", "alerts@localhost"),
            use_tls=bool(settings.get("use_tls", False)),
        )

    async def _send(self, payload: NotificationPayload) -> NotificationResult:
        to = self.config.config.get("to")
        if isinstance(to, list | tuple):
            to = ", ".join(str(addr) for addr in to)
        if not to:
            return self._result(False, "Email recipient not configured")

        outcome = await self.transport.deliver(str(to), payload)
        if outcome.success:
            return self._result(True)
        return self._result(False, outcome.detail or "Email delivery failed")


class ChannelFactory:
    """Create notification channels from their registration records."""

    _registry: ClassVar[dict[str, type[NotificationChannel]]] = {
        ChannelType.WEBHOOK.value: WebhookChannel,
        ChannelType.EMAIL.value: EmailChannel,
        ChannelType.CONSOLE.value: ConsoleChannel,
    }

    @classmethod
    def register(cls, channel_type: str, channel_cls: type[NotificationChannel]) -> None:
        """Register an additional channel type.

        Args:
            channel_type: Type tag used in NotificationChannelConfig.type.
            channel_cls: Channel class constructed with the config.
        """
        cls._registry[channel_type] = channel_cls
        logger.info(f"Registered notification channel type: {channel_type}")

    @classmethod
    def supported_types(cls) -> list[str]:
        return sorted(cls._registry)

    @classmethod
    def create(
        cls,
        config: NotificationChannelConfig,
        *,
        webhook_transport: WebhookTransport | None = None,
        email_transport: EmailTransport | None = None,
        console_sink: Callable[[str], None] | None = None,
    ) -> NotificationChannel:
        """Create the concrete channel for a config.

        Args:
            config: Channel registration record.
            webhook_transport: Transport override for webhook channels.
            email_transport: Transport override for email channels.
            console_sink: Output override for console channels.

        Returns:
            NotificationChannel instance.

        Raises:
            UnsupportedChannelError: If the type tag is unknown.
        """
        channel_cls = cls._registry.get(config.type)
        if channel_cls is None:
            raise UnsupportedChannelError(config.type)

        if channel_cls is WebhookChannel:
            return WebhookChannel(config, transport=webhook_transport)
        if channel_cls is EmailChannel:
            return EmailChannel(config, transport=email_transport)
        if channel_cls is ConsoleChannel:
            return ConsoleChannel(config, sink=console_sink)
        return channel_cls(config)

