"""
Wire format helpers shared by the bank adapters.

Money crosses the provider contract as integer centavos only. Banks want
reais, either as a ``"100.50"`` string or as a JSON number; both are built
here from ``Decimal`` right before serialization, and parsed back to
centavos right after the response is decoded (bodies are decoded with
``parse_float=Decimal`` so no binary float is involved on the way in).
"""

from datetime import datetime, timedelta, timezone
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Optional

from pix_gateway.models.provider import AuthToken
from pix_gateway.providers.errors import ErrorCode, ProviderError

CENT = Decimal("0.01")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def cents_to_decimal(amount: int) -> Decimal:
    """10050 -> Decimal('100.50')."""
    return (Decimal(amount) / 100).quantize(CENT)


def format_amount(amount: int) -> str:
    """10050 -> '100.50', the BCB string representation."""
    return str(cents_to_decimal(amount))


def amount_to_wire_number(amount: int) -> float:
    """
    10050 -> 100.5, for banks whose JSON expects a number.

    A two-decimal value below 2**53 cents survives the float conversion
    because ``repr(float)`` is the shortest string that round-trips.
    """
    return float(cents_to_decimal(amount))


def parse_amount(value: Any) -> int:
    """
    Parse a bank amount in reais (str, int, Decimal or float) to centavos.

    Raises:
        ValueError: On anything that is not a number.
    """
    if value is None or isinstance(value, bool):
        raise ValueError(f"invalid amount: {value!r}")
    try:
        reais = Decimal(str(value).strip())
    except InvalidOperation as e:
        raise ValueError(f"invalid amount: {value!r}") from e
    if not reais.is_finite():
        raise ValueError(f"invalid amount: {value!r}")
    try:
        return int((reais * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    except ArithmeticError as e:
        raise ValueError(f"amount out of range: {value!r}") from e


def wire_amount(value: Any, fallback: int = 0) -> int:
    """
    ``parse_amount`` for decoded response fields; absent values give ``fallback``.

    Raises:
        ProviderError: PARSE_ERROR when the bank sent something unreadable.
    """
    if value is None or value == "":
        return fallback
    try:
        return parse_amount(value)
    except ValueError as e:
        raise ProviderError(ErrorCode.PARSE_ERROR, f"Unreadable amount in response: {value!r}") from e


def parse_token(data: dict[str, Any]) -> AuthToken:
    """
    Standard OAuth2 token response to an ``AuthToken``.

    Raises:
        ProviderError: PARSE_ERROR when access_token or expires_in is unusable.
    """
    access_token = data.get("access_token")
    if not access_token or not isinstance(access_token, str):
        raise ProviderError(ErrorCode.PARSE_ERROR, "Token response has no access_token")
    expires_in = parse_seconds(data.get("expires_in"), "expires_in")
    return AuthToken.issued_now(
        access_token=access_token,
        expires_in=expires_in,
        token_type=data.get("token_type"),
        refresh_token=data.get("refresh_token"),
        scope=data.get("scope"),
    )


def parse_seconds(value: Any, name: str) -> int:
    """
    A duration field in whole seconds; absent gives 0.

    Raises:
        ProviderError: PARSE_ERROR on non-numeric, negative or out of range values.
    """
    if value is None or value == "":
        return 0
    if isinstance(value, bool):
        raise ProviderError(ErrorCode.PARSE_ERROR, f"Invalid {name}: {value!r}")
    try:
        seconds = int(value)
        timedelta(seconds=seconds)
    except (TypeError, ValueError, ArithmeticError) as e:
        raise ProviderError(ErrorCode.PARSE_ERROR, f"Invalid {name}: {value!r}") from e
    if seconds < 0:
        raise ProviderError(ErrorCode.PARSE_ERROR, f"Invalid {name}: {value!r}")
    return seconds


def expiry_after(start: datetime, value: Any) -> Optional[datetime]:
    """``start`` plus a bank-supplied ``expiracao``; None when the bank sent none."""
    seconds = parse_seconds(value, "expiracao")
    if not seconds:
        return None
    try:
        return start + timedelta(seconds=seconds)
    except OverflowError as e:
        raise ProviderError(ErrorCode.PARSE_ERROR, f"Invalid expiracao: {value!r}") from e


def parse_timestamp(value: Any) -> Optional[datetime]:
    """ISO-8601 to an aware datetime; None when absent or unparseable."""
    if not value or not isinstance(value, str):
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def lookup(table: dict[str, Any], key: Optional[str], default: Any) -> Any:
    """Case-insensitive, whitespace-tolerant lookup used by the status tables."""
    if not key:
        return default
    return table.get(str(key).strip().upper(), default)
