"""Binary asset downloader.

Assets are streamed into a temporary file next to their final path and moved
into place with ``os.replace`` only once the whole body has been written, so an
interrupted download never leaves a partial file under the final name.
"""

import os
import tempfile
from pathlib import Path
from typing import Any

import httpx

from wp_migration import __version__
from wp_migration.client.exceptions import DownloadError
from wp_migration.utils.logging import get_logger

logger = get_logger(__name__)

CHUNK_SIZE = 64 * 1024


class AssetDownloader:
    """Stream binary resources from URLs to local storage.

    The downloader does not retry; the coordinator owns the retry policy.
    """

    def __init__(
        self,
        timeout: float = 60,
        verify_ssl: bool = True,
        user_agent: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.client = httpx.AsyncClient(
            timeout=httpx.Timeout(timeout, connect=10.0),
            verify=verify_ssl,
            follow_redirects=True,
            headers={"User-Agent": user_agent or f"wp-bridge/{__version__}"},
            transport=transport,
        )

    async def download(self, url: str, destination: str | Path) -> int:
        """Download ``url`` to ``destination`` atomically.

        Args:
            url: Absolute URL of the asset
            destination: Final path of the file

        Returns:
            Number of bytes written

        Raises:
            DownloadError: On non-2xx responses, transport errors or I/O failures
        """
        dest = Path(destination)
        try:
            dest.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=f".{dest.name}.", suffix=".part", dir=dest.parent)
        except OSError as e:
            raise DownloadError(f"Cannot prepare {dest}: {e}", url=url) from e

        written = 0
        try:
            with os.fdopen(fd, "wb") as fh:
                async with self.client.stream("GET", url) as response:
                    if response.status_code >= 400:
                        raise DownloadError(
                            f"HTTP {response.status_code} downloading {url}",
                            url=url,
                            status_code=response.status_code,
                        )
                    async for chunk in response.aiter_bytes(CHUNK_SIZE):
                        fh.write(chunk)
                        written += len(chunk)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp_name, dest)
        except DownloadError:
            _discard(tmp_name)
            raise
        except (httpx.HTTPError, OSError) as e:
            _discard(tmp_name)
            raise DownloadError(f"Failed to download {url}: {e}", url=url) from e
        except BaseException:
            # Cancellation mid-stream must not leave the temp file behind
            _discard(tmp_name)
            raise

        logger.debug("asset_downloaded", url=url, path=str(dest), bytes=written)
        return written

    async def close(self) -> None:
        await self.client.aclose()

    async def __aenter__(self) -> "AssetDownloader":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()


def _discard(path: str) -> None:
    try:
        os.unlink(path)
    except FileNotFoundError:
        pass
