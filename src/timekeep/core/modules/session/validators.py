import ipaddress
from datetime import datetime, timedelta

from timekeep.errors import ValidationError

MAX_USER_AGENT_LENGTH = 1000
LOGIN_TIME_TOLERANCE = timedelta(minutes=5)


def validate_user_agent(user_agent: str) -> None:
    """Validate the client user agent string.

    Raises:
        ValidationError: If the user agent is empty or too long
    """
    if not user_agent:
        raise ValidationError("User agent is required")

    if len(user_agent) > MAX_USER_AGENT_LENGTH:
        raise ValidationError(f"User agent must be at most {MAX_USER_AGENT_LENGTH} characters")


def validate_ip_address(ip_address: str) -> None:
    """Validate that the value is an IPv4 or IPv6 address."""
    try:
        ipaddress.ip_address(ip_address)
    except ValueError as e:
        raise ValidationError("IP address must be a valid IPv4 or IPv6 address") from e


def validate_login_time(login_time: datetime, now: datetime) -> None:
    """Validate that the reported login time is close to the server clock."""
    if login_time.tzinfo is None:
        raise ValidationError("Login time must include a timezone")

    if abs(now - login_time) > LOGIN_TIME_TOLERANCE:
        raise ValidationError("Login time must be within 5 minutes of the current time")
