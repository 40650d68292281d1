from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Mapping, Sequence


@dataclass(frozen=True)
class UpstreamResponse:
    """Raw upstream answer: status, headers (lower-cased names) and body bytes."""

    status_code: int
    body: bytes = b""
    headers: Mapping[str, str] = field(default_factory=dict)

    @property
    def is_success(self) -> bool:
        return 200 <= self.status_code < 300

    def header(self, name: str) -> str | None:
        return self.headers.get(name.lower())


class AbstractUpstreamClient(ABC):
    """Interface for clients of the upstream blockchain-data API."""

    @property
    @abstractmethod
    def has_credentials(self) -> bool:
        """Whether a bearer secret is configured."""

    @abstractmethod
    async def get(
        self,
        path: str,
        params: Sequence[tuple[str, str]] = (),
    ) -> UpstreamResponse:
        """Perform a single GET against the upstream API.

        Args:
            path: Upstream path starting with ``/`` (e.g. ``/v1/network-status``).
            params: Query parameters forwarded verbatim, in order.

        Returns:
            UpstreamResponse: Whatever the upstream answered, including non-2xx.

        Raises:
            UpstreamNetworkError: If the upstream could not be reached.
            UpstreamTimeoutError: If the attempt timed out at the transport level.
        """
        ...

    async def aclose(self) -> None:
        """Release pooled connections."""
        return None
