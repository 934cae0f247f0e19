"""Image resizing, padding and letterboxing for network input.

Images are numpy arrays laid out as ``(height, width)`` or
``(height, width, channels)``. Sizes are given as ``(width, height)`` pairs.
"""

from __future__ import annotations

import math
from typing import Sequence, Union

import numpy as np

from yoloperception.geometry import BoundingBox, clamp

Color = Union[float, Sequence[float]]

DEFAULT_PAD_COLOR = (114, 114, 114)


def _round_half_away(value: float) -> int:
    """Round to the nearest integer, halves away from zero."""
    magnitude = math.floor(abs(float(value)) + 0.5)
    return int(-magnitude if value < 0 else magnitude)


def _trunc_div(numerator: int, denominator: int) -> int:
    """Integer division truncating toward zero."""
    quotient = abs(numerator) // abs(denominator)
    return quotient if (numerator >= 0) == (denominator > 0) else -quotient


def _trunc_mod(numerator: int, denominator: int) -> int:
    """Remainder whose sign follows the numerator."""
    return numerator - denominator * _trunc_div(numerator, denominator)


def _as_image(image: np.ndarray) -> np.ndarray:
    arr = np.asarray(image)
    if arr.ndim not in (2, 3):
        raise ValueError(f"expected a 2-D or 3-D image, got {arr.ndim} dimensions")
    if arr.shape[0] == 0 or arr.shape[1] == 0:
        raise ValueError("image is empty")
    return arr


def _source_coords(src: int, dst: int) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Neighbour indices and weights for half-pixel-centred linear sampling."""
    positions = (np.arange(dst, dtype=np.float64) + 0.5) * (src / dst) - 0.5
    low = np.floor(positions).astype(np.int64)
    frac = positions - low
    below = low < 0
    frac[below] = 0.0
    low[below] = 0
    above = low >= src - 1
    low[above] = src - 1
    frac[above] = 0.0
    high = np.minimum(low + 1, src - 1)
    return low, high, frac


def resize_bilinear(image: np.ndarray, width: int, height: int) -> np.ndarray:
    """Resize ``image`` to ``width`` x ``height`` with bilinear interpolation.

    Pixel centres are aligned the usual way (half-pixel offset) and edge pixels
    are replicated. Integer images are rounded and saturated to their type.
    """
    arr = _as_image(image)
    if width <= 0 or height <= 0:
        raise ValueError(f"target size must be positive, got {width}x{height}")
    src_h, src_w = arr.shape[:2]
    if (src_w, src_h) == (width, height):
        return arr.copy()

    data = arr.astype(np.float64)
    extra = (1,) * (data.ndim - 2)

    y0, y1, fy = _source_coords(src_h, height)
    fy = fy.reshape((-1, 1) + extra)
    rows = data[y0] * (1.0 - fy) + data[y1] * fy

    x0, x1, fx = _source_coords(src_w, width)
    fx = fx.reshape((1, -1) + extra)
    out = rows[:, x0] * (1.0 - fx) + rows[:, x1] * fx

    if np.issubdtype(arr.dtype, np.integer):
        info = np.iinfo(arr.dtype)
        out = np.clip(np.floor(out + 0.5), info.min, info.max)
    return out.astype(arr.dtype)


def pad_constant(
    image: np.ndarray,
    top: int,
    bottom: int,
    left: int,
    right: int,
    color: Color = DEFAULT_PAD_COLOR,
) -> np.ndarray:
    """Surround ``image`` with a constant border of ``color``.

    For single-channel images only the first component of ``color`` is used.
    """
    arr = _as_image(image)
    if min(top, bottom, left, right) < 0:
        raise ValueError("padding must not be negative")
    height, width = arr.shape[:2]
    shape = (height + top + bottom, width + left + right) + arr.shape[2:]

    components = np.atleast_1d(np.asarray(color, dtype=np.float64))
    if arr.ndim == 2:
        fill = components[0]
    else:
        channels = arr.shape[2]
        fill = np.zeros(channels)
        count = min(channels, components.size)
        fill[:count] = components[:count]

    out = np.empty(shape, dtype=arr.dtype)
    out[...] = fill
    out[top:top + height, left:left + width] = arr
    return out


def letterbox(
    image: np.ndarray,
    new_shape: tuple[int, int],
    color: Color = DEFAULT_PAD_COLOR,
    auto: bool = True,
    scale_fill: bool = False,
    scale_up: bool = True,
    stride: int = 32,
) -> np.ndarray:
    """Resize keeping the aspect ratio, then pad towards ``new_shape``.

    ``new_shape`` is ``(width, height)``. With ``auto`` the padding is reduced
    to the remainder modulo ``stride``; with ``scale_fill`` the image is
    stretched to fill the shape without padding.
    """
    arr = _as_image(image)
    new_w, new_h = new_shape
    rows, cols = arr.shape[:2]

    ratio = min(np.float32(new_h) / np.float32(rows), np.float32(new_w) / np.float32(cols))
    if not scale_up:
        ratio = min(ratio, np.float32(1.0))

    unpad_w = _round_half_away(np.float32(cols) * ratio)
    unpad_h = _round_half_away(np.float32(rows) * ratio)
    dw = new_w - unpad_w
    dh = new_h - unpad_h

    if auto:
        dw = _trunc_mod(dw, stride)
        dh = _trunc_mod(dh, stride)
    elif scale_fill:
        unpad_w, unpad_h = new_w, new_h
        dw = dh = 0

    resized = resize_bilinear(arr, unpad_w, unpad_h)
    top = _trunc_div(dh, 2)
    left = _trunc_div(dw, 2)
    return pad_constant(resized, top, dh - top, left, dw - left, color)


def scale_coords(
    letterbox_shape: tuple[int, int],
    box: BoundingBox,
    original_shape: tuple[int, int],
    clip: bool = True,
) -> BoundingBox:
    """Map a box from letterboxed coordinates back to the original image.

    Both shapes are ``(width, height)``. With ``clip`` the result is kept
    inside the original image.
    """
    lb_w, lb_h = letterbox_shape
    orig_w, orig_h = original_shape
    gain = min(np.float32(lb_h) / np.float32(orig_h), np.float32(lb_w) / np.float32(orig_w))

    pad_w = _round_half_away((np.float32(lb_w) - np.float32(orig_w) * gain) / np.float32(2.0))
    pad_h = _round_half_away((np.float32(lb_h) - np.float32(orig_h) * gain) / np.float32(2.0))

    x = _round_half_away((np.float32(box.x) - np.float32(pad_w)) / gain)
    y = _round_half_away((np.float32(box.y) - np.float32(pad_h)) / gain)
    width = _round_half_away(np.float32(box.width) / gain)
    height = _round_half_away(np.float32(box.height) / gain)

    if clip:
        x = clamp(x, 0, orig_w)
        y = clamp(y, 0, orig_h)
        width = clamp(width, 0, orig_w - x)
        height = clamp(height, 0, orig_h - y)

    return BoundingBox(x, y, width, height)


def to_chw_blob(image: np.ndarray) -> np.ndarray:
    """Scale pixels to ``[0, 1]`` as float32 and lay channels out first."""
    arr = _as_image(image)
    scaled = arr.astype(np.float32) * np.float32(1.0 / 255.0)
    if scaled.ndim == 2:
        return np.ascontiguousarray(scaled[np.newaxis])
    return np.ascontiguousarray(np.transpose(scaled, (2, 0, 1)))