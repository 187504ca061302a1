"""Idempotent download and extraction of source archives.

A source is a pinned zip archive that unpacks to a single top-level
directory (GitHub's ``<repo>-<ref>/`` layout).  :meth:`SourceFetcher.fetch`
brings the source into ``work_dir/<directory>`` doing as little as
possible:

* the target directory already exists: nothing is done;
* the archive already exists: it is extracted without downloading;
* otherwise the archive is downloaded, then extracted.

Downloads stream to ``<archive>.part`` and are renamed once complete, so
an interrupted download is never mistaken for a finished one on the next
run.
"""

from __future__ import annotations

import logging
import os
import shutil
import zipfile
from dataclasses import dataclass
from typing import Any, Mapping, Optional

import httpx

from .errors import DownloadFailed

LOGGER = logging.getLogger(__name__)

PRESENT = "present"
EXTRACTED = "extracted"
DOWNLOADED = "downloaded"
SKIPPED = "dry-run"


@dataclass(frozen=True)
class SourceArchive:
    name: str
    url: str
    archive: str
    directory: str

    @classmethod
    def from_config(cls, name: str, cfg: Mapping[str, Any]) -> "SourceArchive":
        try:
            return cls(
                name=name,
                url=str(cfg["url"]),
                archive=str(cfg.get("archive") or f"{name}.zip"),
                directory=str(cfg.get("directory") or name),
            )
        except KeyError as exc:
            raise ValueError(f"Source '{name}' is missing required key {exc}") from exc


class SourceFetcher:
    """Fetch :class:`SourceArchive` objects into a work directory.

    Parameters
    ----------
    work_dir : str
        Directory holding both the archives and the extracted trees.
    client : httpx.Client, optional
        HTTP client to use.  When omitted a client is created per download.
    timeout : float
        Network timeout in seconds for a fresh client.
    chunk_size : int
        Bytes written per chunk while streaming.
    dry_run : bool
        Log what would be fetched and touch nothing.
    """

    def __init__(
        self,
        work_dir: str,
        client: Optional[httpx.Client] = None,
        timeout: float = 60.0,
        chunk_size: int = 1 << 20,
        dry_run: bool = False,
    ) -> None:
        self.work_dir = work_dir
        self.client = client
        self.timeout = timeout
        self.chunk_size = chunk_size
        self.dry_run = dry_run

    def fetch(self, source: SourceArchive) -> str:
        """Make ``source`` available and report what had to be done."""
        target = os.path.join(self.work_dir, source.directory)
        archive = os.path.join(self.work_dir, source.archive)
        if os.path.isdir(target):
            LOGGER.info("%s exists, skipping download", source.directory)
            return PRESENT
        if self.dry_run:
            LOGGER.info("[dry-run] would fetch %s from %s", source.name, source.url)
            return SKIPPED

        os.makedirs(self.work_dir, exist_ok=True)
        outcome = EXTRACTED
        if not os.path.isfile(archive):
            self.download(source.url, archive)
            outcome = DOWNLOADED
        else:
            LOGGER.info("Reusing archive %s", archive)
        self.extract(archive, target)
        return outcome

    def download(self, url: str, dest: str) -> None:
        partial = dest + ".part"
        LOGGER.info("Downloading %s", url)
        try:
            if self.client is not None:
                self._stream_to(self.client, url, partial)
            else:
                with httpx.Client(timeout=self.timeout, follow_redirects=True) as client:
                    self._stream_to(client, url, partial)
        except httpx.HTTPError as exc:
            if os.path.exists(partial):
                os.remove(partial)
            raise DownloadFailed(f"Download of {url} failed: {exc}") from exc
        os.replace(partial, dest)
        LOGGER.info("Saved %s (%d bytes)", dest, os.path.getsize(dest))

    def _stream_to(self, client: httpx.Client, url: str, path: str) -> None:
        with client.stream("GET", url, follow_redirects=True) as response:
            response.raise_for_status()
            with open(path, "wb") as f:
                for chunk in response.iter_bytes(self.chunk_size):
                    f.write(chunk)

    def extract(self, archive: str, target: str) -> None:
        """Unpack ``archive`` and rename its top-level directory to ``target``."""
        parent = os.path.dirname(target) or "."
        try:
            with zipfile.ZipFile(archive) as zf:
                top = self._single_top_level(zf, archive)
                root = os.path.realpath(parent)
                for member in zf.namelist():
                    dest = os.path.realpath(os.path.join(root, member))
                    if dest != root and not dest.startswith(root + os.sep):
                        raise DownloadFailed(f"{archive} contains an unsafe path: {member}")
                unpacked = os.path.join(parent, top)
                if os.path.isdir(unpacked) and unpacked != target:
                    # Leftover from an interrupted extraction.
                    shutil.rmtree(unpacked)
                zf.extractall(parent)
        except zipfile.BadZipFile as exc:
            LOGGER.error("Removing corrupt archive %s", archive)
            os.remove(archive)
            raise DownloadFailed(f"{archive} is not a valid zip file") from exc
        if unpacked != target:
            os.rename(unpacked, target)
        LOGGER.info("Extracted %s to %s", os.path.basename(archive), target)

    @staticmethod
    def _single_top_level(zf: zipfile.ZipFile, archive: str) -> str:
        tops = {name.split("/", 1)[0] for name in zf.namelist() if name.strip("/")}
        if len(tops) != 1:
            raise DownloadFailed(f"{archive} must contain exactly one top-level directory, found {sorted(tops)}")
        return tops.pop()
