from __future__ import annotations

import os

from PIL import Image

from domain.models import ImageFile

_FORMATS = {
    ".jpg": "JPEG",
    ".jpeg": "JPEG",
    ".png": "PNG",
    ".webp": "WEBP",
}

PART_SUFFIX = ".part"


def load_image(path: str) -> Image.Image:
    with open(path, "rb") as f:
        img = Image.open(f)
        img.load()
    return img.convert("RGB")


def image_format_for(path: str) -> str:
    return _FORMATS.get(os.path.splitext(path)[1].lower(), "PNG")


def output_file_path(output_root: str, image: ImageFile) -> str:
    return os.path.join(output_root, image.relative_path or image.name)


def write_atomic(path: str, data: bytes) -> str:
    """Write ``data`` next to ``path`` and rename it into place."""
    os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
    part_path = path + PART_SUFFIX
    try:
        with open(part_path, "wb") as f:
            f.write(data)
        os.replace(part_path, path)
    except BaseException:
        if os.path.exists(part_path):
            os.remove(part_path)
        raise
    return path
