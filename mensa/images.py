"""Image capture for prompts.

Images come from the macOS clipboard (read through an AppleScript run with
``osascript``) or from a file path pasted into the editor. Each capture becomes
a PendingImage; on submit the payload is written to a temp file the agent can
read.
"""

from __future__ import annotations

import asyncio
import base64
import binascii
import logging
import random
import string
import sys
import tempfile
import time
from pathlib import Path

from .data_structures import PendingImage
from .errors import ImageCaptureError

logger = logging.getLogger(__name__)

__all__ = [
    "IMAGE_EXTENSIONS",
    "is_image_path",
    "clean_image_path",
    "new_image_id",
    "image_from_path",
    "get_clipboard_image",
    "persist_image",
]

MEDIA_TYPES: dict[str, str] = {
    "png": "image/png",
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "gif": "image/gif",
    "webp": "image/webp",
    "bmp": "image/bmp",
    "tiff": "image/tiff",
    "tif": "image/tiff",
}
IMAGE_EXTENSIONS: tuple[str, ...] = tuple(f".{ext}" for ext in MEDIA_TYPES)

_EXTENSIONS_BY_TYPE: dict[str, str] = {
    "image/png": "png",
    "image/jpeg": "jpg",
    "image/gif": "gif",
    "image/webp": "webp",
    "image/bmp": "bmp",
    "image/tiff": "tiff",
}

# Prints "NO_IMAGE" or "<media type>:<base64>"; TIFF is converted to PNG
CLIPBOARD_SCRIPT = """
use framework "AppKit"
use framework "Foundation"
use scripting additions

set pb to current application's NSPasteboard's generalPasteboard()
set imgTypes to {current application's NSPasteboardTypePNG, current application's NSPasteboardTypeTIFF, "public.jpeg"}

set hasImage to false
repeat with imgType in imgTypes
  if (pb's canReadItemWithDataConformingToTypes:{imgType}) as boolean then
    set hasImage to true
    exit repeat
  end if
end repeat

if not hasImage then
  return "NO_IMAGE"
end if

set imgData to missing value
set imgType to ""

set pngData to pb's dataForType:(current application's NSPasteboardTypePNG)
if pngData is not missing value then
  set imgData to pngData
  set imgType to "image/png"
else
  set tiffData to pb's dataForType:(current application's NSPasteboardTypeTIFF)
  if tiffData is not missing value then
    set img to current application's NSImage's alloc()'s initWithData:tiffData
    if img is not missing value then
      set tiffRep to img's TIFFRepresentation()
      set bmpRep to current application's NSBitmapImageRep's imageRepWithData:tiffRep
      set imgData to (bmpRep's representationUsingType:(current application's NSPNGFileType) |properties|:(missing value))
      set imgType to "image/png"
    end if
  end if
end if

if imgData is missing value then
  return "NO_IMAGE"
end if

set base64 to (imgData's base64EncodedStringWithOptions:0) as text
return imgType & ":" & base64
"""


def is_image_path(text: str) -> bool:
    """True if ``text`` ends with a supported image extension."""
    return text.strip().lower().endswith(IMAGE_EXTENSIONS)


def clean_image_path(text: str) -> str:
    """Normalise a pasted path: strip quotes and unescape spaces."""
    path = text.strip()
    if len(path) >= 2 and path[0] == path[-1] and path[0] in ("'", '"'):
        path = path[1:-1]
    return path.replace("\\ ", " ").replace("%20", " ")


def new_image_id() -> str:
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=6))
    return f"img-{int(time.time() * 1000)}-{suffix}"


def image_from_path(text: str) -> PendingImage:
    """Load an image file named by a pasted path.

    Raises:
        ImageCaptureError: If the file is missing or unreadable
    """
    path = Path(clean_image_path(text)).expanduser()
    if not path.is_file():
        raise ImageCaptureError(f"File not found: {str(path)[-50:]}")
    try:
        data = path.read_bytes()
    except OSError as e:
        raise ImageCaptureError(f"Failed to read image: {e}") from e
    ext = path.suffix.lower().lstrip(".")
    return PendingImage(
        id=new_image_id(),
        data=base64.b64encode(data).decode("ascii"),
        media_type=MEDIA_TYPES.get(ext, "image/png"),
    )


def parse_clipboard_output(output: str) -> PendingImage:
    """Turn the clipboard script's output into a PendingImage.

    Raises:
        ImageCaptureError: When the clipboard holds no image or the output is
            malformed
    """
    result = output.strip()
    if result == "NO_IMAGE":
        raise ImageCaptureError("No image in clipboard")
    media_type, sep, data = result.partition(":")
    if not sep:
        raise ImageCaptureError("Failed to parse clipboard data")
    if not data:
        raise ImageCaptureError("Empty image data")
    return PendingImage(id=new_image_id(), data=data, media_type=media_type)


async def get_clipboard_image() -> PendingImage:
    """Read an image from the system clipboard (macOS only).

    Raises:
        ImageCaptureError: On other platforms, or when no image is available
    """
    if sys.platform != "darwin":
        raise ImageCaptureError("Image paste only supported on macOS")
    try:
        process = await asyncio.create_subprocess_exec(
            "osascript",
            "-e",
            CLIPBOARD_SCRIPT,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        stdout, stderr = await process.communicate()
    except OSError as e:
        raise ImageCaptureError(f"Clipboard error: {e}") from e
    if stderr.strip():
        logger.debug("osascript stderr: %s", stderr.decode(errors="replace"))
        raise ImageCaptureError("Failed to access clipboard")
    return parse_clipboard_output(stdout.decode("utf-8", errors="replace"))


def persist_image(image: PendingImage, directory: str | Path | None = None) -> Path:
    """Write an image's payload to disk so the agent can read it.

    Args:
        image: The image to write
        directory: Target directory (a ``mensa-images`` temp dir by default)

    Returns:
        Path of the written file

    Raises:
        ImageCaptureError: If the payload is not valid base64 or cannot be written
    """
    base = Path(directory) if directory is not None else Path(tempfile.gettempdir()) / "mensa-images"
    ext = _EXTENSIONS_BY_TYPE.get(image.media_type, "png")
    path = base / f"{image.id}.{ext}"
    try:
        payload = base64.b64decode(image.data, validate=True)
        base.mkdir(parents=True, exist_ok=True)
        path.write_bytes(payload)
    except (binascii.Error, ValueError) as e:
        raise ImageCaptureError(f"Invalid image data: {e}") from e
    except OSError as e:
        raise ImageCaptureError(f"Failed to save image: {e}") from e
    return path
