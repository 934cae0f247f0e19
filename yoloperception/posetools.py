"""Keypoint data types, pose letterboxing and pose drawing."""

from __future__ import annotations

import math
from dataclasses import dataclass, field

import numpy as np
from PIL import Image, ImageDraw

from yoloperception.geometry import BoundingBox
from yoloperception.imaging import (
    DEFAULT_PAD_COLOR,
    Color,
    _as_image,
    pad_constant,
    resize_bilinear,
)

# COCO skeleton connections between keypoints, 0-based.
POSE_SKELETON: tuple[tuple[int, int], ...] = (
    (0, 1), (0, 2), (1, 3), (2, 4),
    (3, 5), (4, 6),
    (5, 7), (7, 9), (6, 8), (8, 10),
    (5, 6), (5, 11), (6, 12), (11, 12),
    (11, 13), (13, 15), (12, 14), (14, 16),
)

# Pose palette in BGR order.
POSE_PALETTE: tuple[tuple[int, int, int], ...] = (
    (0, 128, 255),
    (51, 153, 255),
    (102, 178, 255),
    (0, 230, 230),
    (255, 153, 255),
    (255, 204, 153),
    (255, 102, 255),
    (255, 51, 255),
    (255, 178, 102),
    (255, 153, 51),
    (153, 153, 255),
    (102, 102, 255),
    (51, 51, 255),
    (153, 255, 153),
    (102, 255, 102),
    (51, 255, 51),
    (0, 255, 0),
    (255, 0, 0),
    (0, 0, 255),
    (255, 255, 255),
)

KEYPOINT_COLOR_INDICES: tuple[int, ...] = (
    16, 16, 16, 16, 16, 0, 0, 0, 0, 0, 0, 9, 9, 9, 9, 9, 9,
)
LIMB_COLOR_INDICES: tuple[int, ...] = (
    9, 9, 9, 9, 7, 7, 7, 0, 0, 0, 0, 0, 16, 16, 16, 16, 16, 16, 16,
)

BOX_COLOR = (0, 255, 0)


@dataclass
class KeyPoint:
    """A keypoint position with the model's confidence in it."""

    x: float = 0.0
    y: float = 0.0
    confidence: float = 0.0


@dataclass
class Detection:
    """A detected object: box, score, class and optional pose keypoints."""

    box: BoundingBox = field(default_factory=BoundingBox)
    conf: float = 0.0
    class_id: int = 0
    keypoints: list[KeyPoint] = field(default_factory=list)


def _trunc_div(numerator: int, denominator: int) -> int:
    quotient = abs(numerator) // abs(denominator)
    return quotient if (numerator >= 0) == (denominator > 0) else -quotient


def _trunc_mod(numerator: int, denominator: int) -> int:
    return numerator - denominator * _trunc_div(numerator, denominator)


def _round_half_away(value: float) -> int:
    magnitude = math.floor(abs(float(value)) + 0.5)
    return int(-magnitude if value < 0 else magnitude)


def pose_letterbox(
    image: np.ndarray,
    new_shape: tuple[int, int],
    color: Color = DEFAULT_PAD_COLOR,
    auto: bool = True,
    scale_fill: bool = False,
    scale_up: bool = True,
    stride: int = 32,
) -> np.ndarray:
    """Letterbox an image the way the pose models expect.

    ``new_shape`` is ``(width, height)``. Without ``auto`` or ``scale_fill``
    the result has exactly ``new_shape``, the padding split evenly. With
    ``auto`` the padding is the remainder modulo ``stride``, halved, and then
    split over both sides. With ``scale_fill`` the image is stretched.
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
        dw = _trunc_div(_trunc_mod(dw, stride), 2)
        dh = _trunc_div(_trunc_mod(dh, stride), 2)
    elif scale_fill:
        unpad_w, unpad_h = new_w, new_h
        dw = dh = 0

    if (cols, rows) != (unpad_w, unpad_h):
        resized = resize_bilinear(arr, unpad_w, unpad_h)
    else:
        resized = arr

    left = _trunc_div(dw, 2)
    top = _trunc_div(dh, 2)
    return pad_constant(resized, top, dh - top, left, dw - left, color)


def draw_pose_estimation(
    image: np.ndarray,
    detections: list[Detection],
    confidence_threshold: float = 0.5,
    kpt_threshold: float = 0.5,
) -> None:
    """Draw boxes, keypoints and skeleton limbs onto a BGR ``uint8`` image in place.

    Detections below ``confidence_threshold`` and keypoints below
    ``kpt_threshold`` are skipped. Line and dot sizes scale with the image.
    """
    if image.ndim != 3 or image.shape[2] != 3 or image.dtype != np.uint8:
        raise ValueError("expected a uint8 image of shape (height, width, 3)")

    min_dim = min(image.shape[0], image.shape[1])
    scale_factor = float(np.float32(min_dim) / np.float32(1280.0))
    line_thickness = max(1, int(2 * scale_factor))
    kpt_radius = max(2, int(4 * scale_factor))

    canvas = Image.fromarray(np.ascontiguousarray(image))
    draw = ImageDraw.Draw(canvas)

    for detection in detections:
        if detection.conf < confidence_threshold:
            continue

        box = detection.box
        x0, x1 = sorted((box.x, box.x + box.width))
        y0, y1 = sorted((box.y, box.y + box.height))
        draw.rectangle([x0, y0, x1, y1], outline=BOX_COLOR, width=line_thickness)

        points: dict[int, tuple[int, int]] = {}
        for index, keypoint in enumerate(detection.keypoints):
            if keypoint.confidence < kpt_threshold:
                continue
            x = _round_half_away(keypoint.x)
            y = _round_half_away(keypoint.y)
            points[index] = (x, y)
            color_index = (
                KEYPOINT_COLOR_INDICES[index] if index < len(KEYPOINT_COLOR_INDICES) else 0
            )
            draw.ellipse(
                [x - kpt_radius, y - kpt_radius, x + kpt_radius, y + kpt_radius],
                fill=POSE_PALETTE[color_index],
            )

        for limb, (src, dst) in enumerate(POSE_SKELETON):
            if src in points and dst in points:
                color_index = (
                    LIMB_COLOR_INDICES[limb] if limb < len(LIMB_COLOR_INDICES) else 0
                )
                draw.line(
                    [points[src], points[dst]],
                    fill=POSE_PALETTE[color_index],
                    width=line_thickness,
                )

    image[...] = np.asarray(canvas)