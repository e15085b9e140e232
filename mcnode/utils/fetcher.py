import inspect
import json
import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator, Awaitable, Callable
import httpx
from mcnode.core.config import Settings
from mcnode.models.errors import (
        NetworkError,
        FetchError,
        TooManyRedirectsError
        )


logger = logging.getLogger(__name__)

ProgressCallback = Callable[[float], Awaitable[None] | None]


class AssetFetcher():
    """
    Streams remote artifacts over HTTP(S). Redirects are followed by hand
    so the hop limit and the error reporting stay ours.
    """

    def __init__(self, settings: Settings):
        self.max_redirects = settings.MAX_REDIRECTS
        self.headers = {"User-Agent": settings.USER_AGENT}
        self.timeout = settings.HTTP_TIMEOUT

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(headers=self.headers,
                                 timeout=self.timeout,
                                 follow_redirects=False)

    @asynccontextmanager
    async def fetch(self, url: str) -> AsyncIterator[httpx.Response]:
        current = url
        try:
            async with self.client() as client:
                for _ in range(self.max_redirects + 1):
                    async with client.stream("GET", current) as response:
                        location = response.headers.get("location")
                        if 300 <= response.status_code < 400 and location:
                            current = str(response.url.join(location))
                            logger.debug("Redirected to %s", current)
                            continue
                        if response.status_code >= 400:
                            raise FetchError(current, response.status_code)
                        yield response
                        return
        except httpx.HTTPError as e:
            # Covers errors while the caller reads the body too
            raise NetworkError(f"GET {current} failed: {e}") from e
        raise TooManyRedirectsError(url, self.max_redirects)

    async def fetch_text(self, url: str) -> str:
        async with self.fetch(url) as response:
            await response.aread()
            return response.text

    async def fetch_json(self, url: str, params: dict | None = None) -> Any:
        if params:
            url = str(httpx.URL(url, params=params))
        text = await self.fetch_text(url)
        try:
            return json.loads(text)
        except ValueError as e:
            raise NetworkError(f"GET {url} returned invalid JSON") from e

    async def download(self, url: str, dest: Path,
                       on_progress: ProgressCallback | None = None) -> Path:
        """
        Downloads url into dest. on_progress receives the byte ratio in
        [0, 1] per chunk, but only when the response has a Content-Length
        """
        dest = Path(dest)
        dest.parent.mkdir(parents=True, exist_ok=True)
        async with self.fetch(url) as response:
            total = int(response.headers.get("content-length") or 0)
            seen = 0
            with open(dest, "wb") as f:
                async for chunk in response.aiter_bytes():
                    f.write(chunk)
                    seen += len(chunk)
                    if total and on_progress:
                        result = on_progress(min(seen / total, 1.0))
                        if inspect.isawaitable(result):
                            await result
        logger.info("Downloaded %s -> %s", url, dest)
        return dest
