import base64
import binascii
import io
import logging
import os
import tempfile
from pathlib import Path
from typing import Optional

from PIL import Image as PILImage, UnidentifiedImageError

from app.config import settings
from app.core.errors import InvalidInputError, ImageIOError

logger = logging.getLogger(__name__)

# Modes the normalized format can hold without conversion
_KEEP_MODES = {"RGB", "RGBA"}


def decode_base64_image(payload: str, max_bytes: int = None) -> bytes:
    """
    Decode one base64 upload. Accepts a bare base64 string or a data URL
    (data:image/png;base64,....).
    """
    if max_bytes is None:
        max_bytes = settings.max_upload_bytes

    if not isinstance(payload, str) or not payload.strip():
        raise InvalidInputError("Empty image payload")

    data = payload.strip()
    if data.startswith("data:"):
        _, _, data = data.partition(",")

    try:
        raw = base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError):
        raise InvalidInputError("Image payload is not valid base64")

    if len(raw) > max_bytes:
        raise InvalidInputError(f"Image exceeds the {max_bytes} byte limit")

    return raw


class StagedImage:
    """A fully written, fsynced file waiting to be renamed onto its final name."""

    def __init__(self, image_id: int, staging_path: Path, target: Path):
        self.image_id = image_id
        self.staging_path = staging_path
        self.target = target

    def promote(self) -> Path:
        try:
            os.replace(self.staging_path, self.target)
        except OSError as e:
            raise ImageIOError(f"Could not move image {self.image_id} into place: {e}")
        return self.target

    def discard(self):
        try:
            os.unlink(self.staging_path)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Could not remove staging file {self.staging_path}: {e}")


class ImageStore:
    """
    Owns the image directory. One file per Image row, named <id>.<format>.

    Writes are two-step: stage() transcodes into a hidden file in the same
    directory and fsyncs it, promote() renames it onto the final name. The
    caller commits the database row in between, so a failed write never
    leaves a committed row behind and a failed commit never leaves a file.
    """

    def __init__(self, root: Optional[Path] = None, image_format: str = None, quality: int = None):
        self.root = Path(root) if root is not None else settings.image_dir
        self.image_format = (image_format or settings.image_extension).lower()
        self.quality = quality if quality is not None else settings.image_quality

    def path_for(self, image_id: int) -> Path:
        return self.root / f"{int(image_id)}.{self.image_format}"

    def exists(self, image_id: int) -> bool:
        return self.path_for(image_id).is_file()

    def _decode(self, raw: bytes) -> PILImage.Image:
        try:
            img = PILImage.open(io.BytesIO(raw))
            img.load()
        except (UnidentifiedImageError, PILImage.DecompressionBombError, OSError, ValueError) as e:
            raise InvalidInputError(f"Unreadable image: {e}")

        if img.mode not in _KEEP_MODES:
            # Palette/LA images may carry transparency
            has_alpha = img.mode in ("LA", "PA") or (img.mode == "P" and "transparency" in img.info)
            img = img.convert("RGBA" if has_alpha else "RGB")

        return img

    def stage(self, image_id: int, raw: bytes) -> StagedImage:
        """
        Transcode raw bytes into a staging file for image_id.
        Raises InvalidInputError for bytes that don't decode and ImageIOError
        when the file can't be written.
        """
        img = self._decode(raw)

        staging_name = None
        try:
            self.root.mkdir(parents=True, exist_ok=True)

            with tempfile.NamedTemporaryFile(
                    dir=self.root,
                    prefix=f".{int(image_id)}-",
                    suffix=".tmp",
                    delete=False
            ) as fh:
                staging_name = fh.name
                img.save(fh, format=self.image_format.upper(), quality=self.quality)
                fh.flush()
                os.fsync(fh.fileno())
        except OSError as e:
            logger.error(f"Failed to write image {image_id}: {e}")
            if staging_name:
                StagedImage(image_id, Path(staging_name), self.path_for(image_id)).discard()
            raise ImageIOError(f"Could not store image {image_id}")
        finally:
            img.close()

        return StagedImage(image_id, Path(staging_name), self.path_for(image_id))

    def materialize(self, image_id: int, raw: bytes) -> Path:
        """Stage and promote in one go, for rows that are already committed."""
        staged = self.stage(image_id, raw)
        try:
            return staged.promote()
        except ImageIOError:
            staged.discard()
            raise

    def delete(self, image_id: int) -> bool:
        """
        Remove the file for image_id. Returns False when it was already gone.
        """
        path = self.path_for(image_id)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            raise ImageIOError(f"Could not delete image {image_id}: {e}")
        return True


def get_image_store() -> ImageStore:
    return ImageStore()
