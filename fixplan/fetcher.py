"""
HTTP fetching for the audit engine.

Every outbound request goes through Fetcher so the User-Agent, timeout and
redirect policy are fixed in one place, and so transport failures surface as
FetchError instead of a zoo of httpx exceptions.
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Tuple

import httpx

from .config import Settings

logger = logging.getLogger(__name__)


class FetchError(Exception):
    """A URL could not be retrieved (transport failure or rejected status)."""

    def __init__(self, url: str, reason: str, status_code: Optional[int] = None):
        super().__init__(reason)
        self.url = url
        self.reason = reason
        self.status_code = status_code


@dataclass
class FetchResult:
    url: str
    final_url: str
    status_code: int
    text: str
    content_type: Optional[str] = None
    redirect_chain: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300


class Fetcher:
    """
    Async GET client with a fixed identity.

    Usage:
        async with Fetcher(settings) as fetcher:
            page = await fetcher.fetch("https://example.com", require_ok=True)
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.settings = settings or Settings()
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self) -> "Fetcher":
        self._client = httpx.AsyncClient(
            headers={"User-Agent": self.settings.user_agent},
            follow_redirects=True,
            max_redirects=self.settings.max_redirects,
            timeout=self.settings.request_timeout,
            transport=self._transport,
        )
        return self

    async def __aexit__(self, *exc) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def fetch(
        self,
        url: str,
        require_ok: bool = False,
        params: Optional[Dict[str, str]] = None,
        allow_redirect: Optional[Callable[[str], bool]] = None,
    ) -> FetchResult:
        """
        GET a URL, following redirects.

        Args:
            url: Absolute http(s) URL.
            require_ok: Treat a non-2xx final status as a FetchError.
            params: Optional query parameters.
            allow_redirect: Called with each redirect target before it is
                requested; a False return stops the fetch with a FetchError.

        Raises:
            FetchError: on DNS/connect/TLS/timeout/redirect-loop failures, or on
                a non-2xx status when require_ok is set.
        """
        if self._client is None:
            raise RuntimeError("Fetcher must be used as an async context manager")

        try:
            response, chain = await self._get(url, params, allow_redirect)
        except httpx.TimeoutException as e:
            raise FetchError(url, f"timed out after {self.settings.request_timeout:g}s") from e
        except httpx.TooManyRedirects as e:
            raise FetchError(url, f"more than {self.settings.max_redirects} redirects") from e
        except httpx.InvalidURL as e:
            raise FetchError(url, f"invalid URL: {e}") from e
        except httpx.HTTPError as e:
            raise FetchError(url, str(e) or e.__class__.__name__) from e

        result = FetchResult(
            url=url,
            final_url=str(response.url),
            status_code=response.status_code,
            text=response.text,
            content_type=response.headers.get("content-type"),
            redirect_chain=chain,
        )
        logger.debug(f"GET {url} -> {result.status_code} ({len(result.text)} bytes)")

        if require_ok and not result.ok:
            raise FetchError(url, f"HTTP {result.status_code}", result.status_code)
        return result

    async def _get(
        self,
        url: str,
        params: Optional[Dict[str, str]],
        allow_redirect: Optional[Callable[[str], bool]],
    ) -> Tuple[httpx.Response, List[str]]:
        if allow_redirect is None:
            response = await self._client.get(url, params=params)
            return response, [str(r.url) for r in response.history]

        # Hop by hop so every Location is vetted before it is requested.
        response = await self._client.get(url, params=params, follow_redirects=False)
        chain: List[str] = []
        while response.next_request is not None:
            target = str(response.next_request.url)
            if len(chain) >= self.settings.max_redirects:
                raise FetchError(url, f"more than {self.settings.max_redirects} redirects")
            if not allow_redirect(target):
                raise FetchError(url, f"redirect to {target} not followed")
            chain.append(str(response.url))
            response = await self._client.send(response.next_request, follow_redirects=False)
        return response, chain
