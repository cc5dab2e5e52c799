"""Publisher port and broker URL parsing.

Broker URLs have the form ``scheme:address``. The scheme selects the sink
(an MQTT broker, or the gateway's own WebSocket push channel) and is
resolved once, here, into a closed enumeration.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol, runtime_checkable

from uaweb_gateway.domain.errors import UnsupportedBrokerScheme

_BROKER_URL_PATTERN = re.compile(r"^(?P<scheme>[A-Za-z][A-Za-z0-9+.-]*):(?P<address>.*)$")


class BrokerScheme(str, Enum):
    """Sinks a subscription can publish to."""

    MQTT = "mqtt"
    WS = "ws"


# Scheme names accepted on input in addition to the canonical values
_SCHEME_ALIASES = {
    "signalr": BrokerScheme.WS,
}


@dataclass(frozen=True)
class BrokerUrl:
    """A parsed ``scheme:address`` broker URL."""

    scheme: BrokerScheme
    address: str

    @property
    def url(self) -> str:
        """Canonical form, used as the registry key."""
        return f"{self.scheme.value}:{self.address}"

    @classmethod
    def parse(cls, broker_url: str) -> BrokerUrl:
        """Parse a broker URL.

        Raises:
            UnsupportedBrokerScheme: If the URL is malformed or the scheme unknown
        """
        match = _BROKER_URL_PATTERN.match(broker_url.strip())
        if match is None:
            raise UnsupportedBrokerScheme(broker_url)

        name = match.group("scheme").lower()
        scheme = _SCHEME_ALIASES.get(name)
        if scheme is None:
            try:
                scheme = BrokerScheme(name)
            except ValueError as e:
                raise UnsupportedBrokerScheme(broker_url) from e

        return cls(scheme=scheme, address=match.group("address"))

    def __str__(self) -> str:
        return self.url


@runtime_checkable
class Publisher(Protocol):
    """A sink for formatted notification messages."""

    async def publish(self, topic: str, message: str) -> None:
        """Send one message to a topic."""
        ...

    async def close(self) -> None:
        """Release the sink's connection."""
        ...


def format_message(topic: str, label: str, value: Any) -> str:
    """Text forwarded for one value change."""
    return f"[TOPIC: {topic}]  \t ({label}): {value}"
