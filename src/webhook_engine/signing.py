import hashlib
import hmac
from collections.abc import Iterable


def compute_signature(secret: str, timestamp: int, body: bytes) -> str:
    signed_payload = f"{timestamp}.".encode() + body
    return hmac.new(secret.encode(), signed_payload, hashlib.sha256).hexdigest()


def signatures_match(expected: str, candidates: Iterable[str]) -> bool:
    # evaluate every candidate so timing does not depend on which one matched
    matched = False
    for candidate in candidates:
        if hmac.compare_digest(expected, candidate):
            matched = True
    return matched
