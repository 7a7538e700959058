"""
Cover image storage.

``ImageStore.save`` takes an uploaded image and returns the URI to store on
the post. Failures are raised, not swallowed: a post must not silently lose
the image its author attached.
"""

import asyncio
import logging
import os
from abc import ABC, abstractmethod
from typing import Optional

from ulid import ULID

from blogify.errors import UpstreamFailure, ValidationFailed

logger = logging.getLogger(__name__)

MAX_IMAGE_BYTES = 5 * 1024 * 1024

_EXTENSIONS = {
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "image/gif": ".gif",
    "image/webp": ".webp",
}


def image_extension(content_type: str) -> str:
    return _EXTENSIONS[content_type]


def validate_image(content_type: Optional[str], data: bytes) -> str:
    if content_type not in _EXTENSIONS:
        raise ValidationFailed.field("cover image", "must be a JPEG, PNG, GIF or WebP image")
    if len(data) == 0:
        raise ValidationFailed.field("cover image", "is empty")
    if len(data) > MAX_IMAGE_BYTES:
        raise ValidationFailed.field("cover image", "is larger than 5MB")
    return content_type


class ImageStore(ABC):
    @abstractmethod
    async def save(
        self, filename: Optional[str], content_type: Optional[str], data: bytes
    ) -> str:
        """Store the image and return its public URI."""

    @abstractmethod
    async def discard(self, uri: str) -> None:
        """Remove an image stored by ``save`` that ended up unused."""


class LocalImageStore(ImageStore):
    """Writes images below ``static_dir`` so the static route serves them."""

    def __init__(self, static_dir: str, upload_subdir: str = "uploads") -> None:
        self.upload_subdir = upload_subdir.strip("/")
        self.upload_dir = os.path.join(static_dir, self.upload_subdir)

    def _path_for(self, uri: str) -> Optional[str]:
        prefix = f"/static/{self.upload_subdir}/"
        if not uri.startswith(prefix):
            return None
        stored_name = os.path.basename(uri[len(prefix) :])
        if not stored_name:
            return None
        return os.path.join(self.upload_dir, stored_name)

    def _write(self, path: str, data: bytes) -> None:
        os.makedirs(self.upload_dir, exist_ok=True)
        with open(path, "wb") as fd:
            fd.write(data)

    async def save(
        self, filename: Optional[str], content_type: Optional[str], data: bytes
    ) -> str:
        content_type = validate_image(content_type, data)
        stored_name = f"{str(ULID()).lower()}{image_extension(content_type)}"
        path = os.path.join(self.upload_dir, stored_name)

        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, self._write, path, data)
        except OSError as e:
            logger.exception("unable to write upload %s", path)
            raise UpstreamFailure.image_store(str(e)) from e

        logger.info("stored cover image %s from %r (%d bytes)", stored_name, filename, len(data))
        return f"/static/{self.upload_subdir}/{stored_name}"

    async def discard(self, uri: str) -> None:
        path = self._path_for(uri)
        if path is None:
            return
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, os.remove, path)
        except FileNotFoundError:
            pass
        except OSError:
            logger.exception("unable to remove unused upload %s", path)
        else:
            logger.info("removed unused cover image %s", os.path.basename(path))
