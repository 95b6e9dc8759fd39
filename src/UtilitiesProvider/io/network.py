"""Archive staging: resolve an :class:`ArchiveSource` to a readable local file.

Local sources are used in place.  Remote sources are streamed over the shared
HTTPX client into a fresh temporary file, which the caller then owns and must
remove once extraction is over, whether it succeeded or not.  Downloads made
here are never retried; a failed fetch surfaces as :class:`DownloadFailed` and
leaves no temporary file behind.
"""

from __future__ import annotations

import logging
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import httpx

from ..cancellation import CancellationToken, raise_if_cancelled
from ..errors import Canceled, DownloadFailed, SourceNotFound
from ..models import ArchiveSource
from ..net import get_http_client
from ..settings import get_settings

LOGGER = logging.getLogger("UtilitiesProvider.io")

__all__ = ["StagedArchive", "download_to_tempfile", "stage_archive"]


@dataclass(slots=True)
class StagedArchive:
    """A readable archive on local disk.

    ``temporary`` is true when the file was downloaded and must be removed by
    the holder; use the instance as a context manager or call :meth:`cleanup`.
    """

    path: Path
    temporary: bool = False

    def cleanup(self) -> None:
        if self.temporary:
            self.path.unlink(missing_ok=True)

    def __enter__(self) -> "StagedArchive":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.cleanup()


def download_to_tempfile(
    url: str,
    *,
    client: Optional[httpx.Client] = None,
    suffix: str = "",
    cancellation_token: Optional[CancellationToken] = None,
    chunk_size: Optional[int] = None,
    logger: Optional[logging.Logger] = None,
) -> Path:
    """Stream ``url`` into a new temporary file and return its path.

    The temporary file is created only after a 2xx status arrives and is
    removed again on any failure, including cancellation between chunks.

    Raises:
        DownloadFailed: On a non-2xx status or a transport error.
        Canceled: When ``cancellation_token`` is cancelled.
    """

    log = logger or LOGGER
    http = client or get_http_client()
    size = chunk_size or get_settings().http.download_chunk_bytes
    raise_if_cancelled(cancellation_token, "download")

    part_path: Optional[Path] = None
    try:
        with http.stream("GET", url) as response:
            if not response.is_success:
                raise DownloadFailed(
                    f"failed to download {url}: HTTP {response.status_code}",
                    url=url,
                    status_code=response.status_code,
                    retryable=response.status_code == 429 or response.status_code >= 500,
                )
            handle, name = tempfile.mkstemp(prefix="downloaded-", suffix=suffix)
            part_path = Path(name)
            written = 0
            with os.fdopen(handle, "wb") as stream:
                for chunk in response.iter_bytes(size):
                    if not chunk:
                        continue
                    raise_if_cancelled(cancellation_token, "download")
                    stream.write(chunk)
                    written += len(chunk)
    except (DownloadFailed, Canceled):
        if part_path is not None:
            part_path.unlink(missing_ok=True)
        raise
    except httpx.HTTPError as exc:
        if part_path is not None:
            part_path.unlink(missing_ok=True)
        log.error(
            "transport error during download",
            extra={"stage": "stage", "url": url, "error": str(exc)},
        )
        raise DownloadFailed(f"failed to download {url}: {exc}", url=url, retryable=True) from exc
    except OSError as exc:
        if part_path is not None:
            part_path.unlink(missing_ok=True)
        raise DownloadFailed(f"failed to store download from {url}: {exc}", url=url) from exc

    log.info(
        "downloaded archive",
        extra={"stage": "stage", "url": url, "path": str(part_path), "bytes": written},
    )
    return part_path


def stage_archive(
    source: ArchiveSource,
    *,
    client: Optional[httpx.Client] = None,
    cancellation_token: Optional[CancellationToken] = None,
    suffix: str = "",
    logger: Optional[logging.Logger] = None,
) -> StagedArchive:
    """Make ``source`` available as a local file.

    Raises:
        SourceNotFound: When a local path is missing or not a regular file.
        DownloadFailed: When a remote archive cannot be fetched.
        Canceled: When cancellation is observed while downloading.
    """

    if source.local_path is not None:
        path = Path(source.local_path)
        if not path.is_file():
            raise SourceNotFound(
                f"archive source does not exist or is not a regular file: {path}",
                path=str(path),
            )
        return StagedArchive(path=path, temporary=False)

    downloaded = download_to_tempfile(
        source.remote_url,
        client=client,
        suffix=suffix,
        cancellation_token=cancellation_token,
        logger=logger,
    )
    return StagedArchive(path=downloaded, temporary=True)
