"""
Proof Normalizer

Turns an uploaded evidence image into a payload the verification model
accepts: at most EVIDENCE_MAX_BYTES, JPEG for raster formats, GIF untouched.

The original upload is only ever read. Failures raise EvidenceError
subclasses; the verifier treats all of them as "fall back to the note".
"""
import base64
import io
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from PIL import Image, UnidentifiedImageError

from core.config import settings

logger = logging.getLogger(__name__)

MAX_IMAGE_BYTES = settings.EVIDENCE_MAX_BYTES
MAX_DIMENSION = 1600
START_QUALITY = 85
QUALITY_STEP = 15
MIN_QUALITY = 20

GIF_SIGNATURE = b"GIF8"


class EvidenceError(Exception):
    """Base class for evidence that cannot be sent to the verifier."""


class EvidenceNotFound(EvidenceError):
    pass


class EvidenceTooLarge(EvidenceError):
    pass


class EvidenceUnprocessable(EvidenceError):
    pass


@dataclass(frozen=True)
class PreparedImage:
    data: bytes
    media_type: str
    quality: Optional[int] = None  # JPEG quality used; None for pass-through GIFs

    @property
    def size_bytes(self) -> int:
        return len(self.data)

    def as_base64(self) -> str:
        return base64.b64encode(self.data).decode("ascii")


def _is_gif(path: Path) -> bool:
    # Decided by content; a .gif name on other bytes goes through Pillow
    with path.open("rb") as fh:
        return fh.read(4) == GIF_SIGNATURE


def _encode_jpeg(image: Image.Image, quality: int) -> bytes:
    buf = io.BytesIO()
    image.save(buf, format="JPEG", quality=quality, optimize=True)
    return buf.getvalue()


def prepare_image(image_path, max_bytes: Optional[int] = None) -> PreparedImage:
    """
    Compress an image until it fits under the size ceiling.

    GIFs are checked as-is (re-encoding would drop animation). Everything
    else is downscaled to fit MAX_DIMENSION x MAX_DIMENSION and re-encoded
    as JPEG, stepping quality down until it fits or MIN_QUALITY is passed.

    Raises:
        EvidenceNotFound: the file is missing
        EvidenceTooLarge: cannot get under max_bytes
        EvidenceUnprocessable: Pillow could not decode or encode it
    """
    max_bytes = max_bytes or MAX_IMAGE_BYTES
    path = Path(image_path)
    if not path.is_file():
        raise EvidenceNotFound("Image file not found on disk")

    try:
        is_gif = _is_gif(path)
    except OSError as e:
        raise EvidenceUnprocessable(f"Could not read image: {e}") from e

    if is_gif:
        try:
            data = path.read_bytes()
        except OSError as e:
            raise EvidenceUnprocessable(f"Could not read image: {e}") from e
        if len(data) > max_bytes:
            raise EvidenceTooLarge("GIF is too large. Please use a JPG or PNG instead.")
        return PreparedImage(data=data, media_type="image/gif")

    try:
        with Image.open(path) as source:
            image = source.convert("RGB")
    except (UnidentifiedImageError, OSError, Image.DecompressionBombError, ValueError) as e:
        raise EvidenceUnprocessable(f"Could not process image: {e}") from e

    # thumbnail() keeps aspect ratio and never enlarges
    image.thumbnail((MAX_DIMENSION, MAX_DIMENSION))

    quality = START_QUALITY
    encoded = b""
    while quality >= MIN_QUALITY:
        try:
            encoded = _encode_jpeg(image, quality)
        except (OSError, ValueError) as e:
            raise EvidenceUnprocessable(f"Could not process image: {e}") from e

        if len(encoded) <= max_bytes:
            logger.info(
                f"Image ready: {len(encoded) / 1024 / 1024:.1f}MB at quality {quality}",
                extra={"extra_fields": {"evidence_bytes": len(encoded), "quality": quality}},
            )
            return PreparedImage(data=encoded, media_type="image/jpeg", quality=quality)

        logger.info(
            f"Image {len(encoded) / 1024 / 1024:.1f}MB, retrying at quality {quality - QUALITY_STEP}"
        )
        quality -= QUALITY_STEP

    raise EvidenceTooLarge("Image is too large even after compression. Please use a smaller image.")
