"""Object storage for receipt photos."""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path
from urllib.parse import unquote, urlparse


class ImageBucket(ABC):
    """Where uploaded receipt photos live."""

    @abstractmethod
    def upload(self, path: str, data: bytes, content_type: str = "image/jpeg") -> None:
        """Store ``data`` under ``path``. Existing objects are never replaced."""
        ...

    @abstractmethod
    def public_url(self, path: str) -> str:
        """Publicly dereferenceable URL of the object at ``path``."""
        ...

    @abstractmethod
    def remove(self, path: str) -> None: ...

    @abstractmethod
    def path_for_url(self, url: str) -> str | None:
        """Inverse of public_url, or None if the URL isn't from this bucket."""
        ...


class LocalImageBucket(ImageBucket):
    """Bucket backed by a local directory.

    URLs are ``public_base_url/path`` when a base URL is configured (for a
    directory served by a web server), ``file://`` URIs otherwise.
    """

    def __init__(
        self,
        root: str | Path = "~/.config/milktrack/receipts",
        public_base_url: str = "",
    ) -> None:
        self._root = Path(root).expanduser()
        self._public_base_url = public_base_url.rstrip("/")

    def _resolve(self, path: str) -> Path:
        target = (self._root / path).resolve()
        if not target.is_relative_to(self._root.resolve()):
            raise ValueError(f"Object path escapes the bucket: {path!r}")
        return target

    def upload(self, path: str, data: bytes, content_type: str = "image/jpeg") -> None:
        target = self._resolve(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        with open(target, "xb") as f:
            f.write(data)

    def public_url(self, path: str) -> str:
        if self._public_base_url:
            return f"{self._public_base_url}/{path}"
        return self._resolve(path).as_uri()

    def remove(self, path: str) -> None:
        self._resolve(path).unlink(missing_ok=True)

    def path_for_url(self, url: str) -> str | None:
        if self._public_base_url and url.startswith(self._public_base_url + "/"):
            return url[len(self._public_base_url) + 1 :]
        parsed = urlparse(url)
        if parsed.scheme != "file":
            return None
        local = Path(unquote(parsed.path))
        root = self._root.resolve()
        if not local.is_relative_to(root):
            return None
        return local.relative_to(root).as_posix()
