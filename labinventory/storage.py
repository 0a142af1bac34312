"""Blob stores holding rendered QR images, keyed by filename.

Two backends share the same three calls:

- ``upload(filename, data)`` writes (overwriting) and returns the public URL.
- ``delete(filename)`` removes the object; a missing object is not an error.
- ``fetch(url)`` returns the bytes behind a URL handed out by ``upload``, or
  ``None`` if there is nothing there.

Failures are raised as :class:`~labinventory.errors.BlobStoreError`.
"""

import os
from urllib.parse import urlparse

import requests

from .errors import BlobStoreError


def ensure_dir(path: str) -> str:
    os.makedirs(path, exist_ok=True)
    return path


class BlobStore:
    def upload(self, filename: str, data: bytes) -> str:
        raise NotImplementedError

    def delete(self, filename: str) -> None:
        raise NotImplementedError

    def fetch(self, url: str):
        raise NotImplementedError


class LocalBlobStore(BlobStore):
    """Keep QR images in a directory served by the app at ``/qrcodes/``."""

    def __init__(self, directory: str, base_url: str):
        self.directory = ensure_dir(directory)
        self.base_url = base_url.rstrip("/")

    def path_for(self, filename: str) -> str:
        name = os.path.basename(filename)
        if not name or name != filename:
            raise BlobStoreError(f"Invalid blob name {filename!r}")
        return os.path.join(self.directory, name)

    def upload(self, filename, data):
        fp = self.path_for(filename)
        try:
            with open(fp, "wb") as fh:
                fh.write(data)
        except OSError as e:
            raise BlobStoreError(f"Failed to write {fp}: {e}") from e
        return f"{self.base_url}/qrcodes/{filename}"

    def delete(self, filename):
        fp = self.path_for(filename)
        try:
            if os.path.exists(fp):
                os.remove(fp)
        except OSError as e:
            raise BlobStoreError(f"Failed to delete {fp}: {e}") from e

    def fetch(self, url):
        fp = self.path_for(os.path.basename(urlparse(url).path))
        if not os.path.exists(fp):
            return None
        try:
            with open(fp, "rb") as fh:
                return fh.read()
        except OSError as e:
            raise BlobStoreError(f"Failed to read {fp}: {e}") from e


class SupabaseBlobStore(BlobStore):
    """Supabase Storage bucket accessed through its REST API."""

    def __init__(self, url: str, service_key: str, bucket: str = "qr-codes",
                 timeout: float = 10, session=None):
        self.url = url.rstrip("/")
        self.bucket = bucket
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({
            "Authorization": f"Bearer {service_key}",
            "apikey": service_key,
        })

    def public_url(self, filename: str) -> str:
        return f"{self.url}/storage/v1/object/public/{self.bucket}/{filename}"

    def _call(self, method: str, url: str, **kwargs):
        try:
            resp = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            raise BlobStoreError(f"{method} {url} failed: {e}") from e
        if not resp.ok:
            raise BlobStoreError(f"{method} {url} returned {resp.status_code}: {resp.text[:200]}")
        return resp

    def upload(self, filename, data):
        self._call(
            "POST",
            f"{self.url}/storage/v1/object/{self.bucket}/{filename}",
            data=data,
            headers={"Content-Type": "image/png", "x-upsert": "true"},
        )
        return self.public_url(filename)

    def delete(self, filename):
        self._call(
            "DELETE",
            f"{self.url}/storage/v1/object/{self.bucket}",
            json={"prefixes": [filename]},
        )

    def fetch(self, url):
        try:
            resp = self.session.get(url, timeout=self.timeout)
        except requests.RequestException as e:
            raise BlobStoreError(f"GET {url} failed: {e}") from e
        if not resp.ok:
            return None
        return resp.content


def blob_store_from_config(config) -> BlobStore:
    backend = (config.get("BLOB_BACKEND") or "local").lower()
    if backend == "local":
        return LocalBlobStore(config["QR_STORAGE_DIR"], config["API_URL"])
    if backend == "supabase":
        if not config.get("SUPABASE_URL") or not config.get("SUPABASE_SERVICE_ROLE_KEY"):
            raise RuntimeError("BLOB_BACKEND=supabase needs SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY")
        return SupabaseBlobStore(
            config["SUPABASE_URL"],
            config["SUPABASE_SERVICE_ROLE_KEY"],
            bucket=config.get("QR_BUCKET", "qr-codes"),
            timeout=config.get("BLOB_TIMEOUT", 10),
        )
    raise RuntimeError(f"Unknown BLOB_BACKEND {backend!r}")
