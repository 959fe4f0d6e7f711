import logging

from PIL import Image

logger = logging.getLogger(__name__)

_PALETTE_MODES = {"P", "PA"}


def prepare_for_resample(image: Image.Image) -> Image.Image:
    """
    Convert modes Pillow cannot Lanczos-filter (palette, bilevel, 16-bit grey)
    into the closest mode that can be filtered and still saved in the source format.
    """
    mode = image.mode
    if mode == "P":
        has_alpha = "transparency" in (image.info or {})
        return image.convert("RGBA" if has_alpha else "RGB")
    if mode == "PA":
        return image.convert("RGBA")
    if mode == "1":
        return image.convert("L")
    if mode.startswith("I;16"):
        return image.convert("I")
    return image


def restore_palette(image: Image.Image) -> Image.Image:
    """Quantize a filtered palette image back to 256 colours (alpha kept for RGBA)."""
    method = Image.Quantize.FASTOCTREE if image.mode == "RGBA" else Image.Quantize.MEDIANCUT
    return image.quantize(colors=256, method=method)


def resample(image: Image.Image, width: int, height: int) -> Image.Image:
    """Return a new image of (width, height) using a Lanczos filter. The input is never mutated."""
    if image.size == (width, height):
        return image.copy()

    working = prepare_for_resample(image)
    resized = working.resize((width, height), Image.Resampling.LANCZOS)
    if image.mode in _PALETTE_MODES:
        resized = restore_palette(resized)
    logger.debug(f"Resampled {image.size[0]}x{image.size[1]} -> {width}x{height} (mode={resized.mode})")
    return resized
