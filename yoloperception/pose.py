"""Human pose detection: decoding of pose model output and a detector wrapper."""

from __future__ import annotations

from typing import Any, Callable, Sequence

import numpy as np

from yoloperception.geometry import BoundingBox, clip, nms_boxes
from yoloperception.imaging import DEFAULT_PAD_COLOR, _as_image, to_chw_blob
from yoloperception.posetools import (
    Detection,
    KeyPoint,
    draw_pose_estimation,
    pose_letterbox,
)

NUM_KEYPOINTS = 17
FEATURES_PER_KEYPOINT = 3
POSE_FEATURES = 4 + 1 + NUM_KEYPOINTS * FEATURES_PER_KEYPOINT

Model = Callable[[np.ndarray], Any]


def _check_size(size: tuple[int, int], name: str) -> tuple[int, int]:
    width, height = size
    if width <= 0 or height <= 0:
        raise ValueError(f"{name} must be positive, got {width}x{height}")
    return int(width), int(height)


def _sigmoid32(value: np.float32) -> np.float32:
    with np.errstate(over="ignore"):
        return np.float32(1.0) / (np.float32(1.0) + np.exp(-value))


def decode_pose_output(
    output: np.ndarray,
    original_size: tuple[int, int],
    resized_size: tuple[int, int],
    conf_threshold: float = 0.4,
    iou_threshold: float = 0.5,
) -> list[Detection]:
    """Turn a raw ``(1, 56, N)`` pose tensor into detections.

    ``original_size`` and ``resized_size`` are ``(width, height)``. Boxes and
    keypoints are mapped back from the letterboxed frame to the original
    image and clipped to it; overlapping boxes are removed by NMS.
    """
    data = np.asarray(output, dtype=np.float32)
    if data.ndim != 3:
        raise ValueError(f"expected a 3-D output tensor, got {data.ndim} dimensions")
    features = data[0]
    if features.shape[0] != POSE_FEATURES:
        raise ValueError(
            f"invalid output shape for pose estimation model: "
            f"{features.shape[0]} features, expected {POSE_FEATURES}"
        )

    orig_w, orig_h = _check_size(original_size, "original size")
    res_w, res_h = _check_size(resized_size, "resized size")

    scale = min(
        np.float32(res_w) / np.float32(orig_w),
        np.float32(res_h) / np.float32(orig_h),
    )
    scaled_w = int(np.float32(orig_w) * scale)
    scaled_h = int(np.float32(orig_h) * scale)
    pad_x = np.float32(res_w - scaled_w) / np.float32(2.0)
    pad_y = np.float32(res_h - scaled_h) / np.float32(2.0)
    half = np.float32(2.0)
    max_x = np.float32(orig_w - 1)
    max_y = np.float32(orig_h - 1)

    boxes: list[BoundingBox] = []
    confidences: list[float] = []
    keypoint_sets: list[list[KeyPoint]] = []

    for column in features.T:
        confidence = column[4]
        if confidence < conf_threshold:
            continue

        cx, cy, w, h = column[:4]
        x = int((cx - pad_x - w / half) / scale)
        y = int((cy - pad_y - h / half) / scale)
        width = int(w / scale)
        height = int(h / scale)

        x = clip(x, 0, orig_w - width)
        y = clip(y, 0, orig_h - height)
        width = clip(width, 0, orig_w - x)
        height = clip(height, 0, orig_h - y)

        keypoints = []
        for k in range(NUM_KEYPOINTS):
            offset = 5 + k * FEATURES_PER_KEYPOINT
            kx = (column[offset] - pad_x) / scale
            ky = (column[offset + 1] - pad_y) / scale
            keypoints.append(
                KeyPoint(
                    x=float(clip(kx, np.float32(0.0), max_x)),
                    y=float(clip(ky, np.float32(0.0), max_y)),
                    confidence=float(_sigmoid32(column[offset + 2])),
                )
            )

        boxes.append(BoundingBox(x, y, width, height))
        confidences.append(float(confidence))
        keypoint_sets.append(keypoints)

    kept = nms_boxes(boxes, confidences, conf_threshold, iou_threshold)
    return [
        Detection(
            box=boxes[index],
            conf=confidences[index],
            class_id=0,
            keypoints=keypoint_sets[index],
        )
        for index in kept
    ]


class PoseDetector:
    """Runs a pose model on images and decodes its output.

    ``model`` is any callable taking a float32 ``(1, 3, H, W)`` blob and
    returning the output tensor, or a sequence whose first item is it.
    ``input_shape`` is the model's ``(width, height)``; with ``dynamic`` the
    letterbox padding is reduced to a multiple of the stride.
    """

    def __init__(
        self,
        model: Model,
        input_shape: tuple[int, int] = (640, 640),
        dynamic: bool = False,
    ) -> None:
        if not callable(model):
            raise TypeError("model must be callable")
        self.model = model
        self.input_shape = _check_size(input_shape, "input shape")
        self.dynamic = dynamic

    def _preprocess(self, image: np.ndarray) -> tuple[np.ndarray, tuple[int, int]]:
        letterboxed = pose_letterbox(
            image,
            self.input_shape,
            DEFAULT_PAD_COLOR,
            auto=self.dynamic,
            scale_fill=False,
            scale_up=True,
            stride=32,
        )
        blob = to_chw_blob(letterboxed)[np.newaxis]
        height, width = letterboxed.shape[:2]
        return blob, (width, height)

    def detect(
        self,
        image: np.ndarray,
        conf_threshold: float = 0.4,
        iou_threshold: float = 0.5,
    ) -> list[Detection]:
        """Detect people and their keypoints in ``image``."""
        arr = _as_image(image)
        blob, resized_size = self._preprocess(arr)
        result = self.model(blob)
        if isinstance(result, (list, tuple)):
            if not result:
                raise ValueError("model returned no outputs")
            result = result[0]
        original_size = (arr.shape[1], arr.shape[0])
        return decode_pose_output(
            result, original_size, resized_size, conf_threshold, iou_threshold
        )

    def draw_bounding_box(
        self, image: np.ndarray, detections: Sequence[Detection]
    ) -> None:
        """Draw boxes, keypoints and skeletons onto ``image`` in place."""
        draw_pose_estimation(image, list(detections))