"""Signature verification over raw request bytes.

Schemes share one signature shape: hex HMAC-SHA256 of ``"{timestamp}." + body``.
Every failure raises the same ``VerificationError`` so a caller can't tell
which check rejected the delivery.
"""

import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime

from webhook_engine.errors import VerificationError
from webhook_engine.signing import compute_signature, signatures_match

STRIPE_SIGNATURE_HEADER = "stripe-signature"
HMAC_SIGNATURE_HEADER = "x-webhook-signature"
HMAC_TIMESTAMP_HEADER = "x-webhook-timestamp"
DEFAULT_TOLERANCE_SECONDS = 300

VerifyScheme = Callable[[bytes, Mapping[str, str], str], None]


@dataclass(frozen=True)
class RawDelivery:
    body: bytes
    headers: Mapping[str, str]
    received_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def __post_init__(self) -> None:
        # schemes look headers up by their lowercase names
        object.__setattr__(self, "headers", {k.lower(): v for k, v in self.headers.items()})

    @classmethod
    def from_request(cls, body: bytes, headers: Mapping[str, str]) -> "RawDelivery":
        return cls(body=body, headers=headers)


class VerifiedEvent:
    __slots__ = ("delivery",)

    def __init__(self, delivery: RawDelivery, *, _token: object = None) -> None:
        if _token is not _VERIFIED:
            raise TypeError("VerifiedEvent can only be produced by verify()")
        self.delivery = delivery

    @property
    def body(self) -> bytes:
        return self.delivery.body


_VERIFIED = object()


def verify(delivery: RawDelivery, scheme: VerifyScheme, secret: str) -> VerifiedEvent:
    if not secret:
        raise VerificationError()
    scheme(delivery.body, delivery.headers, secret)
    return VerifiedEvent(delivery, _token=_VERIFIED)


def _parse_timestamp(value: str | None) -> int:
    if not value:
        raise VerificationError()
    try:
        return int(value)
    except ValueError:
        raise VerificationError() from None


def _check_window(timestamp: int, tolerance: int, now: float | None) -> None:
    current = time.time() if now is None else now
    if abs(current - timestamp) > tolerance:
        raise VerificationError()


def _parse_stripe_header(header: str) -> tuple[str | None, list[str]]:
    timestamp = None
    signatures = []
    for item in header.split(","):
        key, sep, value = item.strip().partition("=")
        if not sep:
            continue
        if key == "t":
            timestamp = value
        elif key == "v1" and value:
            signatures.append(value)
    return timestamp, signatures


def verify_stripe_signature(
    body: bytes,
    headers: Mapping[str, str],
    secret: str,
    *,
    tolerance: int = DEFAULT_TOLERANCE_SECONDS,
    now: float | None = None,
) -> None:
    header = headers.get(STRIPE_SIGNATURE_HEADER)
    if not header:
        raise VerificationError()
    raw_timestamp, signatures = _parse_stripe_header(header)
    if not signatures:
        raise VerificationError()
    timestamp = _parse_timestamp(raw_timestamp)
    _check_window(timestamp, tolerance, now)
    if not signatures_match(compute_signature(secret, timestamp, body), signatures):
        raise VerificationError()


def verify_hmac_signature(
    body: bytes,
    headers: Mapping[str, str],
    secret: str,
    *,
    tolerance: int = DEFAULT_TOLERANCE_SECONDS,
    now: float | None = None,
) -> None:
    signature = headers.get(HMAC_SIGNATURE_HEADER, "")
    algorithm, _, digest = signature.partition("=")
    if algorithm != "sha256" or not digest:
        raise VerificationError()
    timestamp = _parse_timestamp(headers.get(HMAC_TIMESTAMP_HEADER))
    _check_window(timestamp, tolerance, now)
    if not signatures_match(compute_signature(secret, timestamp, body), [digest]):
        raise VerificationError()


def stripe_scheme(tolerance: int) -> VerifyScheme:
    def scheme(body: bytes, headers: Mapping[str, str], secret: str) -> None:
        verify_stripe_signature(body, headers, secret, tolerance=tolerance)

    return scheme
