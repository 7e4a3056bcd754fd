"""Download pictures from their public URLs, singly or packed into a zip."""

import asyncio
import os
import zipfile
from typing import Sequence

from aiohttp import ClientResponse, ClientSession, client_exceptions
from tqdm import tqdm
from validators import url as validate_url

from picmirror.errors import PicmirrorError, TransportError
from picmirror.utils import dbg, env_int, get_random_user_agent, sanitize

MAX_CONCURRENT_DOWNLOADS = env_int("PICMIRROR_CONCURRENCY", 4)


async def _stream_response_to_file(response: ClientResponse, file_path: str) -> None:
    """Stream response content to disk with a progress bar."""
    file_size = int(response.headers.get("content-length", 0))
    dbg(f"Saving to '{file_path}' size={file_size if file_size else 'unknown'}")
    with open(file_path, "wb") as file, tqdm(
        desc=os.path.basename(file_path),
        total=file_size,
        unit="B",
        unit_scale=True,
        unit_divisor=1024,
        leave=False,
    ) as progress_bar:
        while chunk := await response.content.read(1024):
            file.write(chunk)
            progress_bar.update(len(chunk))


def _check_url(url: str) -> None:
    if not validate_url(url):
        raise TransportError(f"Invalid URL: {url}")


async def download_file(session: ClientSession, url: str, save_path: str) -> str:
    """
    Download one picture to `save_path`.

    Raises:
        TransportError: Invalid URL, connection failure or a non-2xx status.
    """
    _check_url(url)
    headers = {"User-Agent": get_random_user_agent()}
    try:
        async with session.get(url, headers=headers) as response:
            if response.status >= 300:
                raise TransportError(f"Download failed: HTTP {response.status}")
            await _stream_response_to_file(response, save_path)
    except (client_exceptions.ClientError, asyncio.TimeoutError) as error:
        raise TransportError(f"Download failed: {error}") from error
    except OSError as error:
        raise PicmirrorError(f"Failed to write file: {error}") from error
    return f"File saved to: {save_path}"


async def _fetch_bytes(session: ClientSession, url: str) -> bytes:
    _check_url(url)
    headers = {"User-Agent": get_random_user_agent()}
    try:
        async with session.get(url, headers=headers) as response:
            if response.status >= 300:
                raise TransportError(f"HTTP {response.status}")
            return await response.read()
    except (client_exceptions.ClientError, asyncio.TimeoutError) as error:
        raise TransportError(str(error)) from error


async def download_as_zip(
    session: ClientSession,
    files: Sequence[tuple[str, str]],
    save_path: str,
    max_concurrent: int = MAX_CONCURRENT_DOWNLOADS,
) -> tuple[int, list[str]]:
    """
    Download `(url, filename)` pairs and pack them into a deflated zip.

    Args:
        session (ClientSession): The active HTTP client session.
        files (Sequence[tuple[str, str]]): URL and archive member name per picture.
        save_path (str): Zip file to create.
        max_concurrent (int): Parallel downloads.

    Returns:
        tuple[int, list[str]]:
            - success_count (int): Files written to the archive.
            - failures (list[str]): "<filename>: <reason>" per failed file.

    Raises:
        PicmirrorError: Nothing to download, or every download failed.
    """
    if not files:
        raise PicmirrorError("No files to download")

    semaphore = asyncio.Semaphore(max_concurrent)
    progress_bar = tqdm(total=len(files), desc="Files", unit="file", leave=False)

    async def fetch(url: str) -> bytes:
        async with semaphore:
            try:
                return await _fetch_bytes(session, url)
            finally:
                progress_bar.update(1)

    results = await asyncio.gather(
        *(fetch(url) for url, _ in files), return_exceptions=True
    )
    progress_bar.close()

    success_count = 0
    failures: list[str] = []
    with zipfile.ZipFile(save_path, "w", compression=zipfile.ZIP_DEFLATED) as archive:
        for (url, filename), result in zip(files, results):
            name = sanitize(filename)
            if isinstance(result, Exception):
                failures.append(f"{name}: {result}")
                dbg(f"Zip member failed for {url}: {result}")
                continue
            archive.writestr(name, result)
            success_count += 1

    if success_count == 0:
        raise PicmirrorError("All downloads failed:\n" + "\n".join(failures))
    return success_count, failures
