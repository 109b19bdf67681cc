"""Per-request identity rotation for the award search API."""

from __future__ import annotations

import random
from dataclasses import dataclass
from typing import Dict, Optional, Protocol, Sequence

# Sent with every request so calls look like the public web client.
FINGERPRINT_HEADERS: Dict[str, str] = {
    "accept-language": "es-AR,es;q=0.9,en;q=0.8,en-GB;q=0.7,en-US;q=0.6,es-419;q=0.5",
    "cache-control": "no-cache",
    "channel": "Web",
    "language": "es-ES",
    "origin": "https://www.smiles.com.ar",
    "pragma": "no-cache",
    "priority": "u=1, i",
    "referer": "https://www.smiles.com.ar/",
    "region": "ARGENTINA",
    "sec-ch-ua": '"Brave";v="125", "Chromium";v="125", "Not.A/Brand";v="24"',
    "sec-ch-ua-mobile": "?0",
    "sec-ch-ua-platform": '"macOS"',
    "sec-fetch-dest": "empty",
    "sec-fetch-mode": "cors",
    "sec-fetch-site": "cross-site",
    "sec-gpc": "1",
}


@dataclass(frozen=True, slots=True)
class Identity:
    token: Optional[str]
    user_agent: str


class IdentityProvider(Protocol):
    def identity(self) -> Identity: ...


class RandomIdentityProvider:
    """Pick a token and a user agent uniformly at random for every call."""

    def __init__(
        self,
        tokens: Sequence[str],
        user_agents: Sequence[str],
        rng: Optional[random.Random] = None,
    ) -> None:
        if not user_agents:
            raise ValueError("at least one user agent is required")
        self._tokens = list(tokens)
        self._user_agents = list(user_agents)
        self._rng = rng or random.Random()

    def identity(self) -> Identity:
        token = self._rng.choice(self._tokens) if self._tokens else None
        return Identity(token=token, user_agent=self._rng.choice(self._user_agents))


def build_headers(identity: Identity, api_key: str) -> Dict[str, str]:
    headers = dict(FINGERPRINT_HEADERS)
    headers["user-agent"] = identity.user_agent
    headers["x-api-key"] = api_key
    headers["Accept-Encoding"] = "gzip"
    if identity.token:
        headers["authorization"] = f"Bearer {identity.token}"
    return headers


__all__ = [
    "FINGERPRINT_HEADERS",
    "Identity",
    "IdentityProvider",
    "RandomIdentityProvider",
    "build_headers",
]
