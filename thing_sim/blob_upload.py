# thing_sim/blob_upload.py

import os
import shutil
from typing import Callable, Optional
from urllib.parse import quote

import requests

from .errors import TransportError


def blob_url(container_url: str, name: str) -> str:
    """Insert the blob name before any query string (e.g. a SAS token)."""
    base, sep, query = container_url.partition("?")
    url = f"{base.rstrip('/')}/{quote(name)}"
    return f"{url}?{query}" if sep else url


class HttpBlobUploader:
    def __init__(
        self,
        container_url: str,
        session: Optional[requests.Session] = None,
        timeout_s: float = 10.0,
        logger: Callable[[str], None] = print,
    ):
        self._container_url = container_url
        self._session = session or requests.Session()
        self._timeout = timeout_s
        self._log = logger

    def upload(self, name: str, local_path: str) -> None:
        url = blob_url(self._container_url, name)
        try:
            with open(local_path, "rb") as f:
                resp = self._session.put(
                    url,
                    data=f,
                    headers={"x-ms-blob-type": "BlockBlob", "Content-Type": "application/octet-stream"},
                    timeout=self._timeout,
                )
        except (OSError, requests.RequestException) as e:
            raise TransportError(f"upload of {name} failed: {e}") from e

        if resp.status_code >= 300:
            raise TransportError(f"upload of {name} rejected: HTTP {resp.status_code}")
        self._log(f"[UPLOAD] {name} -> HTTP {resp.status_code}")


class DirectoryUploader:
    """Stores uploads in a local directory."""

    def __init__(self, root: str, logger: Callable[[str], None] = print):
        self._root = root
        self._log = logger

    def upload(self, name: str, local_path: str) -> None:
        dest = os.path.join(self._root, name)
        try:
            os.makedirs(self._root, exist_ok=True)
            shutil.copyfile(local_path, dest)
        except OSError as e:
            raise TransportError(f"upload of {name} failed: {e}") from e
        self._log(f"[UPLOAD] {name} -> {dest}")
