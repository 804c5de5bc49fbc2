import ipaddress

from security.errors import InvalidInput


def normalize_email(value: str) -> str:
    return (value or "").strip().lower()


def validate_ip(value) -> str:
    """Return the canonical text form of an IPv4/IPv6 address."""
    if not isinstance(value, str) or not value.strip():
        raise InvalidInput("IP address is required")
    try:
        return str(ipaddress.ip_address(value.strip()))
    except ValueError:
        raise InvalidInput(f"Invalid IP address: {value!r}")


def validate_email(value) -> str:
    email = normalize_email(value) if isinstance(value, str) else ""
    if "@" not in email or len(email) > 255:
        raise InvalidInput("Invalid email")
    return email


def validate_identifier(value, max_length: int = 255):
    """Optional free-form identifiers (device fingerprint). Empty means absent."""
    if value is None:
        return None
    if not isinstance(value, str) or len(value) > max_length:
        raise InvalidInput("Invalid identifier")
    return value.strip() or None
