import io
import re
from typing import Tuple

from PIL import Image, UnidentifiedImageError

from campusboard.specs.common.errors import FormValidationError

_UNSAFE = re.compile(r"[^\w.\-]+", re.UNICODE)


def inspect_thumbnail(data: bytes) -> Tuple[str, Tuple[int, int]]:
    """Check that ``data`` decodes as an image.

    Returns (content_type, (width, height)); raises FormValidationError on the
    ``thumbnail`` field otherwise.
    """
    if not data:
        raise FormValidationError({"thumbnail": ["サムネイル画像を選択してください"]})
    try:
        with Image.open(io.BytesIO(data)) as img:
            img.verify()
            fmt = img.format or ""
            size = img.size
    except (UnidentifiedImageError, OSError, SyntaxError) as exc:
        raise FormValidationError({"thumbnail": ["画像ファイルを選択してください"]}) from exc
    content_type = Image.MIME.get(fmt.upper(), "application/octet-stream")
    return content_type, size


def thumbnail_blob_name(filename: str, epoch_ms: int) -> str:
    """``news/<epoch-ms>_<filename>`` with path separators and spaces removed."""
    safe = _UNSAFE.sub("_", filename.strip()).strip("._") or "thumbnail"
    return f"news/{epoch_ms}_{safe}"
