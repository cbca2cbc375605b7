"""
Blob storage for bills and issue slips.

Responsibility:
    Store an uploaded attachment under ``{folder}/{site_code}_{epoch_ms}.{ext}``
    and hand out time-limited signed URLs for viewing it.

Architecture position:
    Services -- I/O boundary.  ``BlobStore`` is the seam; ``LocalBlobStore``
    is the filesystem implementation used in development and tests.

Invariants enforced:
    - Uploads never overwrite an existing object.
    - Size is checked in ``validate`` before anything is written.
    - Signed URLs are HMAC-SHA256 over ``path`` and the expiry timestamp;
      expired or altered URLs fail verification.

Failure modes:
    - FileTooLargeError from validate().
    - FileUploadError when the object exists or the write fails.
    - StoredFileNotFoundError when signing or reading a missing object.
    - InvalidSignatureError from verify().
"""

from __future__ import annotations

import hashlib
import hmac
import mimetypes
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from urllib.parse import quote, urlencode

from materials_config.schema import StorageConfig
from materials_kernel.domain.clock import Clock, SystemClock
from materials_kernel.domain.dtos import Attachment
from materials_kernel.exceptions import (
    FileTooLargeError,
    FileUploadError,
    InvalidSignatureError,
    StoredFileNotFoundError,
)
from materials_kernel.logging_config import get_logger

logger = get_logger("services.storage")

DEFAULT_MAX_UPLOAD_BYTES = 10 * 1024 * 1024
DEFAULT_SIGNED_URL_TTL = 3600


@dataclass(frozen=True)
class UploadFile:
    """An attachment as received from the user."""

    file_name: str
    content: bytes
    content_type: str | None = None

    @property
    def size(self) -> int:
        return len(self.content)

    @property
    def extension(self) -> str:
        suffix = PurePosixPath(self.file_name).suffix.lstrip(".").lower()
        return suffix or "bin"


@dataclass(frozen=True)
class StoredFile:
    path: str
    original_name: str
    size: int
    content_type: str | None = None

    def to_attachment(self) -> Attachment:
        return Attachment(path=self.path, original_name=self.original_name)


def object_name(folder: str, site_code: str, epoch_ms: int, extension: str) -> str:
    return f"{folder}/{site_code}_{epoch_ms}.{extension}"


class BlobStore(ABC):
    """Upload and signed-URL contract for attachment storage."""

    def __init__(self, max_upload_bytes: int = DEFAULT_MAX_UPLOAD_BYTES):
        self.max_upload_bytes = max_upload_bytes

    def validate(self, upload: UploadFile) -> None:
        if upload.size > self.max_upload_bytes:
            raise FileTooLargeError(upload.file_name, upload.size, self.max_upload_bytes)

    @abstractmethod
    def upload(self, folder: str, site_code: str, upload: UploadFile) -> StoredFile:
        ...

    @abstractmethod
    def signed_url(self, path: str, expires_in: int | None = None) -> str:
        ...


class LocalBlobStore(BlobStore):
    """Filesystem-backed blob store with HMAC-signed URLs."""

    def __init__(
        self,
        root: Path | str,
        signing_key: str,
        clock: Clock | None = None,
        base_url: str = "/files",
        max_upload_bytes: int = DEFAULT_MAX_UPLOAD_BYTES,
        default_ttl: int = DEFAULT_SIGNED_URL_TTL,
    ):
        super().__init__(max_upload_bytes)
        self.root = Path(root)
        self._key = signing_key.encode()
        self._clock = clock or SystemClock()
        self._base_url = base_url.rstrip("/")
        self._default_ttl = default_ttl

    @classmethod
    def from_config(cls, config: StorageConfig, clock: Clock | None = None) -> LocalBlobStore:
        return cls(
            config.root,
            config.signing_key,
            clock=clock,
            base_url=config.base_url,
            max_upload_bytes=config.max_upload_bytes,
            default_ttl=config.signed_url_ttl_seconds,
        )

    def _resolve(self, path: str) -> Path:
        relative = PurePosixPath(path)
        if relative.is_absolute() or ".." in relative.parts:
            raise StoredFileNotFoundError(path)
        return self.root.joinpath(*relative.parts)

    def upload(self, folder: str, site_code: str, upload: UploadFile) -> StoredFile:
        self.validate(upload)
        path = object_name(folder, site_code, self._clock.epoch_millis(), upload.extension)
        target = self._resolve(path)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            with open(target, "xb") as f:
                f.write(upload.content)
        except FileExistsError:
            raise FileUploadError(path, "object already exists") from None
        except OSError as exc:
            raise FileUploadError(path, str(exc)) from exc

        content_type = upload.content_type or mimetypes.guess_type(upload.file_name)[0]
        logger.info(
            "file_uploaded",
            extra={"path": path, "size": upload.size, "original_name": upload.file_name},
        )
        return StoredFile(
            path=path,
            original_name=upload.file_name,
            size=upload.size,
            content_type=content_type,
        )

    def _signature(self, path: str, expires: int) -> str:
        message = f"{path}:{expires}".encode()
        return hmac.new(self._key, message, hashlib.sha256).hexdigest()

    def signed_url(self, path: str, expires_in: int | None = None) -> str:
        if not self._resolve(path).is_file():
            raise StoredFileNotFoundError(path)
        ttl = expires_in if expires_in is not None else self._default_ttl
        expires = int(self._clock.now_utc().timestamp()) + ttl
        query = urlencode({"expires": expires, "signature": self._signature(path, expires)})
        return f"{self._base_url}/{quote(path)}?{query}"

    def verify(self, path: str, expires: int, signature: str) -> None:
        """Raise InvalidSignatureError unless the URL parameters are valid now."""
        if int(self._clock.now_utc().timestamp()) > int(expires):
            raise InvalidSignatureError(path, "expired")
        if not hmac.compare_digest(self._signature(path, int(expires)), signature):
            raise InvalidSignatureError(path)

    def read(self, path: str) -> bytes:
        target = self._resolve(path)
        if not target.is_file():
            raise StoredFileNotFoundError(path)
        return target.read_bytes()
