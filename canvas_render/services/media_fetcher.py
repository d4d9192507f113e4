"""Download element sources to local temp files and probe them."""

import asyncio
import logging
import os
import uuid
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Iterable, Optional
from urllib.parse import urlparse

import httpx

from canvas_render.config import ProcessorConfig
from canvas_render.exceptions import MediaDownloadError, ProcessingError
from canvas_render.schemas.canvas import Element, ElementType
from canvas_render.utils.media_info import probe_media

logger = logging.getLogger(__name__)

DOWNLOAD_CHUNK_SIZE = 64 * 1024


@dataclass
class FetchedMedia:
    """A downloaded element source and its probed metadata."""

    element: Element
    local_path: str
    kind: ElementType
    width: int | None = None
    height: int | None = None
    duration_s: float | None = None


def infer_extension(url: str, kind: ElementType) -> str:
    """Infer a file extension from the URL path, falling back by element type."""
    suffix = PurePosixPath(urlparse(url).path).suffix.lower()
    if suffix:
        return suffix
    return ".png" if kind == "image" else ".mp4"


def cleanup_paths(paths: Iterable[str]) -> None:
    """Delete files best-effort; missing files and OS errors are ignored."""
    for path in paths:
        try:
            os.unlink(path)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"[FETCH] Failed to remove temp file {path}: {e}")


class MediaFetcher:
    """Fetches the media of one processing run.

    Every local path is recorded in :attr:`tracked_paths` before its download
    starts, so the owner can clean up whatever was written even when the
    run fails midway.
    """

    def __init__(self, config: ProcessorConfig, client: Optional[httpx.AsyncClient] = None):
        self.config = config
        self._client = client
        self.tracked_paths: list[str] = []

    def _new_temp_path(self, element: Element) -> str:
        ext = infer_extension(element.source, element.type)
        path = str(Path(self.config.temp_dir) / f"{uuid.uuid4().hex}{ext}")
        self.tracked_paths.append(path)
        return path

    async def fetch_all(self, elements: list[Element]) -> list[FetchedMedia]:
        """Download and probe all elements concurrently.

        Returns:
            FetchedMedia in element order

        Raises:
            ProcessingError: On the first download or probe failure
        """
        Path(self.config.temp_dir).mkdir(parents=True, exist_ok=True)

        if self._client is not None:
            return await self._gather(self._client, elements)

        async with self.build_client() as client:
            return await self._gather(client, elements)

    def build_client(self, transport: Optional[httpx.AsyncBaseTransport] = None) -> httpx.AsyncClient:
        """Client used when none is injected, configured from :attr:`config`."""
        return httpx.AsyncClient(
            timeout=self.config.download_timeout_s,
            follow_redirects=True,
            max_redirects=self.config.download_max_redirects,
            headers={"User-Agent": self.config.user_agent},
            transport=transport,
        )

    async def _gather(self, client: httpx.AsyncClient, elements: list[Element]) -> list[FetchedMedia]:
        tasks = [asyncio.ensure_future(self.fetch(client, el)) for el in elements]
        try:
            return list(await asyncio.gather(*tasks))
        except BaseException:
            # Siblings must stop writing before the caller deletes their files
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

    async def fetch(self, client: httpx.AsyncClient, element: Element) -> FetchedMedia:
        """Download one element source and probe it."""
        local_path = self._new_temp_path(element)
        await self._download(client, element.source, local_path)

        try:
            info = await probe_media(local_path, self.config.ffprobe_path)
        except ProcessingError:
            raise
        except Exception as e:
            raise ProcessingError(f"Failed to probe media: {element.source}") from e

        duration_s = info.duration_s if element.type == "video" else None
        logger.info(
            f"[FETCH] element={element.id} type={element.type} "
            f"size={info.width}x{info.height} duration={duration_s}"
        )
        return FetchedMedia(
            element=element,
            local_path=local_path,
            kind=element.type,
            width=info.width,
            height=info.height,
            duration_s=duration_s,
        )

    async def _download(self, client: httpx.AsyncClient, url: str, dest_path: str) -> None:
        """Stream ``url`` into ``dest_path``.

        Raises:
            MediaDownloadError: On transport errors, too many redirects,
                a status outside 2xx/3xx or a write failure
        """
        try:
            async with client.stream("GET", url) as response:
                if not 200 <= response.status_code < 400:
                    raise MediaDownloadError(url, cause=f"HTTP {response.status_code}")
                with open(dest_path, "wb") as f:
                    async for chunk in response.aiter_bytes(DOWNLOAD_CHUNK_SIZE):
                        f.write(chunk)
        except MediaDownloadError:
            raise
        except (httpx.HTTPError, OSError) as e:
            logger.warning(f"[FETCH] Download failed for {url}: {e}")
            raise MediaDownloadError(url, cause=str(e)) from e
