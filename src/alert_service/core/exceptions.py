"""Custom exception hierarchy for alert-service.

Only construction-time problems are raised: invalid rules, unsupported
channel types and registry conflicts. Evaluation and notification paths
report failures as result values instead.
"""


class AlertServiceException(Exception):  # noqa: N818
    """Base exception for alert-service.

    All custom exceptions in alert-service inherit from this class so that
    callers can catch every service specific error with one except clause.
    """

    def __init__(self, message: str = "") -> None:
        """Initialize the exception.

        Args:
            message: Human-readable error message.
        """
        super().__init__(message)
        self.message = message


class ConfigurationError(AlertServiceException):
    """Configuration is invalid.

    Raised when the service or a notification channel is configured with
    invalid or missing values.
    """

    def __init__(self, message: str = "Invalid configuration") -> None:
        super().__init__(message)


class UnsupportedChannelError(ConfigurationError):
    """Notification channel type is not supported.

    Raised by the channel factory when a channel is registered with a type
    tag that has no concrete implementation.
    """

    def __init__(self, channel_type: str = "") -> None:
        """Initialize the exception.

        Args:
            channel_type: The rejected channel type tag.
        """
        super().__init__(f"Unsupported channel type: {channel_type}")
        self.channel_type = channel_type


class RuleValidationError(AlertServiceException):
    """Alert rule or condition definition is invalid.

    Raised when building a rule without required fields, without any
    conditions, or with an unknown operator or aggregation.
    """

    def __init__(self, message: str = "Invalid alert rule") -> None:
        super().__init__(message)


class RuleNotFoundError(AlertServiceException):
    """Alert rule is not registered."""

    def __init__(self, rule_id: str = "") -> None:
        """Initialize the exception.

        Args:
            rule_id: ID of the missing rule.
        """
        super().__init__(f"Rule {rule_id} not found")
        self.rule_id = rule_id


class DuplicateRuleError(AlertServiceException):
    """An alert rule with the same ID is already registered."""

    def __init__(self, rule_id: str = "") -> None:
        super().__init__(f"Rule {rule_id} is already registered")
        self.rule_id = rule_id


class DuplicateChannelError(AlertServiceException):
    """A notification channel with the same ID is already registered."""

    def __init__(self, channel_id: str = "") -> None:
        super().__init__(f"Channel {channel_id} is already registered")
        self.channel_id = channel_id
