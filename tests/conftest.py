"""
Shared fakes for the token relay tests. Nothing here starts a real browser.
"""
import asyncio

import pytest

from token_relay.services.credential import Credential


class FakeClock:
    def __init__(self, now_ms: float = 1_700_000_000_000) -> None:
        self.now_ms = now_ms

    def __call__(self) -> float:
        return self.now_ms

    def advance(self, ms: float) -> None:
        self.now_ms += ms


class FakeFetcher:
    """Counts calls; each call can be held on ``gate`` and returns/raises from ``results``."""

    def __init__(self, *results) -> None:
        self.results = list(results)
        self.calls = 0
        self.gate: asyncio.Event | None = None

    async def __call__(self) -> Credential:
        self.calls += 1
        if self.gate is not None:
            await self.gate.wait()
        result = self.results.pop(0) if len(self.results) > 1 else self.results[0]
        if isinstance(result, BaseException):
            raise result
        return result


def make_credential(expires_at_ms: int, token: str = "tok") -> Credential:
    return Credential.from_payload(
        {
            "clientId": "client",
            "accessToken": token,
            "accessTokenExpirationTimestampMs": expires_at_ms,
            "isAnonymous": True,
        }
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
