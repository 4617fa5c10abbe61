"""Perceptual fingerprints for item photos.

A fingerprint is a block mean-value hash: the image is drawn onto a fixed
square canvas, split into ``bits x bits`` blocks, and each block is compared
with the median of its horizontal band. Visually similar photos land a small
Hamming distance apart. Not a cryptographic digest.
"""

from __future__ import annotations

import io
import math
from collections.abc import Sequence
from os import PathLike
from typing import IO, Union

from PIL import Image, UnidentifiedImageError

from .errors import FingerprintError

DEFAULT_CANVAS_SIZE = 256
DEFAULT_BITS = 8

ImageSource = Union[str, PathLike, bytes, IO[bytes], Image.Image]

_TRANSPARENT_VALUE = 765


def _median(values: Sequence[float]) -> float:
    ordered = sorted(values)
    mid = len(ordered) // 2
    if len(ordered) % 2 == 0:
        return (ordered[mid - 1] + ordered[mid]) / 2.0
    return ordered[mid]


def _pixel_value(pixels: bytes, index: int) -> int:
    if pixels[index + 3] == 0:
        return _TRANSPARENT_VALUE
    return pixels[index] + pixels[index + 1] + pixels[index + 2]


def _blocks_to_bits(blocks: list[float], pixels_per_block: float) -> list[int]:
    half_block_value = pixels_per_block * 256 * 3 / 2
    band_size = len(blocks) // 4
    bits: list[int] = []
    for band in range(4):
        band_blocks = blocks[band * band_size : (band + 1) * band_size]
        m = _median(band_blocks)
        for value in band_blocks:
            # Bands dominated by black or white put many blocks on the median;
            # resolve those by which half of the value space the median sits in.
            bits.append(int(value > m or (abs(value - m) < 1 and m > half_block_value)))
    return bits


def _bits_to_hex(bits: Sequence[int]) -> str:
    chars = []
    for i in range(0, len(bits), 4):
        nibble = bits[i : i + 4]
        chars.append(format(int("".join(str(b) for b in nibble), 2), "x"))
    return "".join(chars)


def _even_blocks(pixels: bytes, width: int, height: int, bits: int) -> tuple[list[float], float]:
    block_w = width // bits
    block_h = height // bits
    blocks: list[float] = []
    for y in range(bits):
        for x in range(bits):
            total = 0
            for iy in range(block_h):
                row = (y * block_h + iy) * width
                for ix in range(block_w):
                    total += _pixel_value(pixels, (row + x * block_w + ix) * 4)
            blocks.append(total)
    return blocks, block_w * block_h


def _weighted_blocks(
    pixels: bytes, width: int, height: int, bits: int
) -> tuple[list[float], float]:
    grid = [[0.0] * bits for _ in range(bits)]
    even_x = width % bits == 0
    even_y = height % bits == 0
    block_w = width / bits
    block_h = height / bits

    def _split(pos: int, extent: int, block: float, even: bool) -> tuple[int, int, float, float]:
        if even:
            idx = math.floor(pos / block)
            return idx, idx, 1.0, 0.0
        mod = (pos + 1) % block
        frac = mod - math.floor(mod)
        whole = mod - frac
        if whole > 0 or pos + 1 == extent:
            first = second = math.floor(pos / block)
        else:
            first = math.floor(pos / block)
            second = math.ceil(pos / block)
        return first, second, 1 - frac, frac

    for y in range(height):
        top, bottom, w_top, w_bottom = _split(y, height, block_h, even_y)
        for x in range(width):
            left, right, w_left, w_right = _split(x, width, block_w, even_x)
            value = _pixel_value(pixels, (y * width + x) * 4)
            grid[top][left] += value * w_top * w_left
            grid[top][right] += value * w_top * w_right
            grid[bottom][left] += value * w_bottom * w_left
            grid[bottom][right] += value * w_bottom * w_right

    blocks = [grid[row][col] for row in range(bits) for col in range(bits)]
    return blocks, block_w * block_h


def blockhash(pixels: bytes, width: int, height: int, bits: int = DEFAULT_BITS) -> str:
    """Hash an RGBA pixel buffer into ``bits * bits / 4`` hex characters."""
    if bits < 2 or bits % 2:
        raise ValueError("bits must be an even number >= 2")
    if width < bits or height < bits:
        raise ValueError("image is smaller than the hash grid")
    if len(pixels) < width * height * 4:
        raise ValueError("pixel buffer is shorter than width * height * 4")
    if width % bits == 0 and height % bits == 0:
        blocks, per_block = _even_blocks(pixels, width, height, bits)
    else:
        blocks, per_block = _weighted_blocks(pixels, width, height, bits)
    return _bits_to_hex(_blocks_to_bits(blocks, per_block))


def _open_image(source: ImageSource) -> Image.Image:
    if isinstance(source, Image.Image):
        return source
    if isinstance(source, bytes):
        source = io.BytesIO(source)
    try:
        img = Image.open(source)
        img.load()
    except (UnidentifiedImageError, OSError) as exc:
        raise FingerprintError(f"cannot decode image: {exc}") from exc
    return img


def render_canvas(source: ImageSource, size: int = DEFAULT_CANVAS_SIZE) -> Image.Image:
    img = _open_image(source)
    rgba = img.convert("RGBA")
    if rgba.size == (size, size):
        return rgba
    # Aspect ratio is not preserved.
    return rgba.resize((size, size), Image.Resampling.BILINEAR)


def compute_fingerprint(
    source: ImageSource,
    *,
    size: int = DEFAULT_CANVAS_SIZE,
    bits: int = DEFAULT_BITS,
) -> str:
    canvas = render_canvas(source, size)
    return blockhash(canvas.tobytes(), canvas.width, canvas.height, bits)


def hamming_distance(a: str, b: str) -> int:
    if len(a) != len(b):
        raise ValueError("fingerprints must have the same length")
    try:
        return bin(int(a, 16) ^ int(b, 16)).count("1")
    except ValueError as exc:
        raise ValueError("fingerprints must be hexadecimal") from exc
