"""Instance segmentation: decoding of segmentation model output, drawing, detector wrapper."""

from __future__ import annotations

import random
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Sequence

import numpy as np
from PIL import Image, ImageDraw, ImageFont

from yoloperception.geometry import BoundingBox, nms_boxes
from yoloperception.imaging import (
    DEFAULT_PAD_COLOR,
    _as_image,
    _round_half_away,
    letterbox,
    resize_bilinear,
    scale_coords,
    to_chw_blob,
)

CONFIDENCE_THRESHOLD = 0.40
IOU_THRESHOLD = 0.45
MASK_THRESHOLD = 0.40
NUM_MASKS = 32

Model = Callable[[np.ndarray], Any]

_color_cache: dict[tuple[int, tuple[str, ...]], list[tuple[int, int, int]]] = {}


@dataclass
class Segmentation:
    """A segmented object: box, score, class and a full-size ``uint8`` mask."""

    box: BoundingBox = field(default_factory=BoundingBox)
    conf: float = 0.0
    class_id: int = 0
    mask: np.ndarray | None = None


def _read_lines(path: str | Path) -> list[str]:
    with open(path, encoding="utf-8", newline="") as handle:
        text = handle.read()
    lines = text.split("\n")
    if lines and lines[-1] == "":
        lines.pop()
    return [line[:-1] if line.endswith("\r") else line for line in lines]


def read_class_names(path: str | Path) -> list[str]:
    """Read one class name per line; a trailing carriage return is dropped."""
    return _read_lines(path)


def generate_colors(class_names: Sequence[str], seed: int = 42) -> list[tuple[int, int, int]]:
    """One pseudo-random colour per class, reproducible for the same names and seed."""
    key = (seed, tuple(class_names))
    cached = _color_cache.get(key)
    if cached is not None:
        return list(cached)
    rng = random.Random(seed)
    colors = [
        (rng.randint(0, 255), rng.randint(0, 255), rng.randint(0, 255))
        for _ in class_names
    ]
    _color_cache[key] = colors
    return list(colors)


def sigmoid(values: Any) -> np.ndarray:
    """Element-wise logistic function in float32."""
    arr = np.asarray(values, dtype=np.float32)
    with np.errstate(over="ignore"):
        return (np.float32(1.0) / (np.float32(1.0) + np.exp(-arr))).astype(np.float32)


def _mask_crop(
    letterbox_size: tuple[int, int],
    original_size: tuple[int, int],
    mask_size: tuple[int, int],
) -> tuple[int, int, int, int] | None:
    """Region of the prototype masks that covers the unpadded image."""
    lb_w, lb_h = letterbox_size
    orig_w, orig_h = original_size
    mask_w, mask_h = mask_size
    gain = min(np.float32(lb_h) / np.float32(orig_h), np.float32(lb_w) / np.float32(orig_w))
    half = np.float32(2.0)
    pad_w = np.float32(lb_w - int(np.float32(orig_w) * gain)) / half
    pad_h = np.float32(lb_h - int(np.float32(orig_h) * gain)) / half
    scale_x = np.float32(mask_w) / np.float32(lb_w)
    scale_y = np.float32(mask_h) / np.float32(lb_h)
    margin = np.float32(0.1)

    x1 = _round_half_away((pad_w - margin) * scale_x)
    y1 = _round_half_away((pad_h - margin) * scale_y)
    x2 = _round_half_away((np.float32(lb_w) - pad_w + margin) * scale_x)
    y2 = _round_half_away((np.float32(lb_h) - pad_h + margin) * scale_y)

    x1 = max(0, min(x1, mask_w - 1))
    y1 = max(0, min(y1, mask_h - 1))
    x2 = max(x1, min(x2, mask_w))
    y2 = max(y1, min(y2, mask_h))
    if x2 <= x1 or y2 <= y1:
        return None
    return x1, y1, x2, y2


def decode_segmentation_output(
    output0: np.ndarray,
    output1: np.ndarray,
    original_size: tuple[int, int],
    letterbox_size: tuple[int, int],
    conf_threshold: float = CONFIDENCE_THRESHOLD,
    iou_threshold: float = IOU_THRESHOLD,
) -> list[Segmentation]:
    """Turn raw ``(1, 4+C+32, N)`` predictions and ``(1, 32, H, W)`` prototypes into results.

    Sizes are ``(width, height)``. Boxes are mapped back to the original image,
    and each mask is a binary ``uint8`` image (0 or 255) of the original size,
    cut to its box.
    """
    preds = np.asarray(output0, dtype=np.float32)
    protos = np.asarray(output1, dtype=np.float32)
    if protos.ndim != 4 or protos.shape[0] != 1 or protos.shape[1] != NUM_MASKS:
        raise ValueError("unexpected prototype shape, expected [1, 32, maskH, maskW]")
    if preds.ndim != 3:
        raise ValueError(f"expected a 3-D prediction tensor, got {preds.ndim} dimensions")

    num_features, num_detections = preds.shape[1], preds.shape[2]
    if num_detections == 0:
        return []
    num_classes = num_features - 4 - NUM_MASKS
    if num_classes <= 0:
        raise ValueError("invalid number of classes")

    orig_w, orig_h = (int(v) for v in original_size)
    lb_w, lb_h = (int(v) for v in letterbox_size)
    if min(orig_w, orig_h, lb_w, lb_h) <= 0:
        raise ValueError("sizes must be positive")
    mask_h, mask_w = protos.shape[2], protos.shape[3]

    half = np.float32(2.0)
    boxes: list[BoundingBox] = []
    confidences: list[float] = []
    class_ids: list[int] = []
    coefficients: list[np.ndarray] = []

    for column in preds[0].T:
        xc, yc, w, h = column[:4]
        scores = column[4:4 + num_classes]
        best = int(np.argmax(scores))
        max_conf = float(scores[best])
        if max_conf <= 0.0:
            best, max_conf = -1, 0.0
        if max_conf < conf_threshold:
            continue
        boxes.append(
            BoundingBox(
                _round_half_away(xc - w / half),
                _round_half_away(yc - h / half),
                _round_half_away(w),
                _round_half_away(h),
            )
        )
        confidences.append(max_conf)
        class_ids.append(best)
        coefficients.append(column[4 + num_classes:4 + num_classes + NUM_MASKS].copy())

    if not boxes:
        return []
    kept = nms_boxes(boxes, confidences, conf_threshold, iou_threshold)
    crop = _mask_crop((lb_w, lb_h), (orig_w, orig_h), (mask_w, mask_h))
    if not kept or crop is None:
        return []
    x1, y1, x2, y2 = crop
    image_rect = BoundingBox(0, 0, orig_w, orig_h)

    results: list[Segmentation] = []
    for index in kept:
        box = scale_coords((lb_w, lb_h), boxes[index], (orig_w, orig_h), True)
        combined = np.tensordot(coefficients[index], protos[0], axes=1).astype(np.float32)
        probabilities = sigmoid(combined)[y1:y2, x1:x2]
        resized = resize_bilinear(probabilities, orig_w, orig_h)
        binary = np.where(resized > 0.5, 255, 0).astype(np.uint8)

        mask = np.zeros((orig_h, orig_w), dtype=np.uint8)
        roi = box.intersect(image_rect)
        if roi.area() > 0:
            rows = slice(roi.y, roi.y + roi.height)
            cols = slice(roi.x, roi.x + roi.width)
            mask[rows, cols] = binary[rows, cols]

        results.append(
            Segmentation(box=box, conf=confidences[index], class_id=class_ids[index], mask=mask)
        )
    return results


def _check_canvas(image: np.ndarray) -> None:
    if image.ndim != 3 or image.shape[2] != 3 or image.dtype != np.uint8:
        raise ValueError("expected a uint8 image of shape (height, width, 3)")


def _blend_mask(
    image: np.ndarray, mask: np.ndarray, color: tuple[int, int, int], alpha: float
) -> None:
    mask = np.asarray(mask)
    if mask.size == 0:
        return
    if mask.ndim == 3 and mask.shape[2] == 3:
        gray = np.floor(
            mask[..., 0] * 0.114 + mask[..., 1] * 0.587 + mask[..., 2] * 0.299 + 0.5
        )
    else:
        gray = mask
    selected = gray > 127
    colored = np.zeros(image.shape, dtype=np.float64)
    colored[selected] = color
    blended = image.astype(np.float64) + colored * alpha
    image[...] = np.clip(np.floor(blended + 0.5), 0, 255).astype(np.uint8)


class SegDetector:
    """Runs a segmentation model on images and decodes its output.

    ``model`` is a callable taking a float32 ``(1, 3, H, W)`` blob and
    returning a sequence whose first two items are the prediction tensor and
    the prototype masks. ``input_shape`` is ``(width, height)``.
    """

    def __init__(
        self,
        model: Model,
        class_names: Sequence[str],
        input_shape: tuple[int, int] = (640, 640),
        dynamic: bool = False,
    ) -> None:
        if not callable(model):
            raise TypeError("model must be callable")
        width, height = input_shape
        if width <= 0 or height <= 0:
            raise ValueError(f"input shape must be positive, got {width}x{height}")
        self.model = model
        self.input_shape = (int(width), int(height))
        self.dynamic = dynamic
        self.class_names = list(class_names)
        self.class_colors = generate_colors(self.class_names)

    def segment(
        self,
        image: np.ndarray,
        conf_threshold: float = CONFIDENCE_THRESHOLD,
        iou_threshold: float = IOU_THRESHOLD,
    ) -> list[Segmentation]:
        """Segment objects in ``image``."""
        arr = _as_image(image)
        letterboxed = letterbox(
            arr,
            self.input_shape,
            DEFAULT_PAD_COLOR,
            auto=self.dynamic,
            scale_fill=False,
            scale_up=True,
            stride=32,
        )
        blob = to_chw_blob(letterboxed)[np.newaxis]
        outputs = self.model(blob)
        if not isinstance(outputs, (list, tuple)) or len(outputs) < 2:
            raise ValueError("model must return at least 2 outputs")
        lb_h, lb_w = letterboxed.shape[:2]
        return decode_segmentation_output(
            outputs[0],
            outputs[1],
            (arr.shape[1], arr.shape[0]),
            (lb_w, lb_h),
            conf_threshold,
            iou_threshold,
        )

    def _color_for(self, class_id: int) -> tuple[int, int, int]:
        if not self.class_colors:
            raise ValueError("no class colours available")
        return self.class_colors[class_id % len(self.class_colors)]

    def draw_segmentations_and_boxes(
        self,
        image: np.ndarray,
        results: Sequence[Segmentation],
        mask_alpha: float = 0.5,
    ) -> None:
        """Draw boxes, labels and tinted masks onto a BGR ``uint8`` image in place."""
        _check_canvas(image)
        font = ImageFont.load_default()
        for seg in results:
            if seg.conf < CONFIDENCE_THRESHOLD:
                continue
            color = self._color_for(seg.class_id)
            box = seg.box

            canvas = Image.fromarray(np.ascontiguousarray(image))
            draw = ImageDraw.Draw(canvas)
            x0, x1 = sorted((box.x, box.x + box.width))
            y0, y1 = sorted((box.y, box.y + box.height))
            draw.rectangle([x0, y0, x1, y1], outline=color, width=2)

            label = f"{self.class_names[seg.class_id]} {int(seg.conf * 100)}%"
            left, upper, right, lower = font.getbbox(label)
            label_w, label_h = right - left, lower - upper
            top = max(box.y, label_h + 5)
            draw.rectangle(
                [box.x, top - label_h - 5, box.x + label_w + 5, top], fill=color
            )
            draw.text((box.x + 2, top - 2 - label_h), label, fill=(255, 255, 255), font=font)
            image[...] = np.asarray(canvas)

            if seg.mask is not None:
                _blend_mask(image, seg.mask, color, mask_alpha)

    def draw_segmentations(
        self,
        image: np.ndarray,
        results: Sequence[Segmentation],
        mask_alpha: float = 0.5,
    ) -> None:
        """Tint the masked areas of a BGR ``uint8`` image in place."""
        _check_canvas(image)
        for seg in results:
            if seg.conf < CONFIDENCE_THRESHOLD:
                continue
            color = self._color_for(seg.class_id)
            if seg.mask is not None:
                _blend_mask(image, seg.mask, color, mask_alpha)