"""
Composes playlist cover images from member track artwork.
"""

import logging
from collections.abc import Sequence
from io import BytesIO

from PIL import Image, UnidentifiedImageError

log = logging.getLogger(__name__)

PLACEHOLDER_COLOR = (68, 68, 68)
MAX_CELLS = 4


def _load_cell(data: bytes | None, cell_size: int) -> Image.Image | None:
    if not data:
        return None
    try:
        with Image.open(BytesIO(data)) as img:
            return img.convert("RGB").resize(
                (cell_size, cell_size), Image.Resampling.LANCZOS
            )
    except (UnidentifiedImageError, OSError, ValueError) as e:
        log.debug(f"Unreadable artwork for cover cell: {e}")
        return None


def compose_cover(artworks: Sequence[bytes | None], size: int = 500) -> bytes:
    """
    Arranges up to four artworks in a 2x2 grid and returns JPEG bytes.

    A single artwork fills the whole image. A missing or undecodable artwork
    leaves its cell as a flat placeholder color.
    """
    cells = list(artworks[:MAX_CELLS])
    cell_size = size if len(cells) <= 1 else size // 2
    canvas = Image.new("RGB", (size, size), PLACEHOLDER_COLOR)

    for index, data in enumerate(cells):
        x = (index % 2) * cell_size
        y = (index // 2) * cell_size
        image = _load_cell(data, cell_size)
        if image is None:
            canvas.paste(PLACEHOLDER_COLOR, (x, y, x + cell_size, y + cell_size))
            continue
        canvas.paste(image, (x, y))

    buffer = BytesIO()
    canvas.save(buffer, format="JPEG", quality=80)
    return buffer.getvalue()
