from dataclasses import dataclass, field
from typing import Any

from token_relay.services.errors import UpstreamInvalidResponse

DEFAULT_SAFETY_MARGIN_MS = 10_000


@dataclass(frozen=True)
class Credential:
    """An access token as returned by the source, plus its parsed expiry."""

    access_token: str
    expires_at_ms: int
    payload: dict[str, Any] = field(default_factory=dict, compare=False)

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "Credential":
        token = payload.get("accessToken")
        expires = payload.get("accessTokenExpirationTimestampMs")
        if not isinstance(token, str) or not token:
            raise UpstreamInvalidResponse("Invalid response from source: missing accessToken")
        # bool is an int subclass, reject it explicitly
        if isinstance(expires, bool) or not isinstance(expires, (int, float)):
            raise UpstreamInvalidResponse(
                "Invalid response from source: missing accessTokenExpirationTimestampMs"
            )
        return cls(access_token=token, expires_at_ms=int(expires), payload=dict(payload))

    def is_valid(self, now_ms: float, margin_ms: int = DEFAULT_SAFETY_MARGIN_MS) -> bool:
        return now_ms < self.expires_at_ms - margin_ms

    def ttl_ms(self, now_ms: float) -> int:
        return int(self.expires_at_ms - now_ms)
