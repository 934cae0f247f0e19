# yoloperception

Post-processing and visualisation for YOLO pose-estimation and
instance-segmentation models, plus a small detection node that turns model
results into labelled objects.

The package does not load or run networks. You supply the model as any
callable that takes a float32 blob of shape `(1, 3, H, W)` and returns the raw
output arrays; the package does the letterboxing, the decoding, the
non-maximum suppression and the drawing.

Images are numpy arrays of shape `(height, width)` or
`(height, width, channels)`; the drawing functions expect BGR `uint8` images of
shape `(height, width, 3)` and draw on them in place. Sizes are given as
`(width, height)` pairs.

## Modules

- `yoloperception.geometry`: the frozen dataclass `BoundingBox` (with `area()`
  and `intersect()`), `clamp`, `clip` (which swaps bounds given in the wrong
  order), `vector_product`, and `nms_boxes`, a greedy non-maximum suppression
  that returns the kept indices in the order they were kept.
- `yoloperception.imaging`: `resize_bilinear`, `pad_constant`, `letterbox`,
  `scale_coords` (maps a letterboxed box back to the original image) and
  `to_chw_blob` (scales pixels to `[0, 1]` and puts channels first).
- `yoloperception.posetools`: the `KeyPoint` and `Detection` dataclasses,
  `pose_letterbox` and `draw_pose_estimation`, which draws boxes, keypoints
  and the COCO skeleton.
- `yoloperception.pose`: `decode_pose_output`, which turns a `(1, 56, N)`
  tensor (box, score, 17 keypoints) into detections, and `PoseDetector`, with
  `detect(image, conf_threshold, iou_threshold)` and
  `draw_bounding_box(image, detections)`.
- `yoloperception.segmentation`: the `Segmentation` dataclass,
  `read_class_names`, `generate_colors` (one reproducible colour per class),
  `sigmoid`, `decode_segmentation_output` for `(1, 4+C+32, N)` predictions with
  `(1, 32, H, W)` prototype masks, and `SegDetector`, with
  `segment(image, conf_threshold, iou_threshold)`,
  `draw_segmentations_and_boxes(image, results, mask_alpha)` and
  `draw_segmentations(image, results, mask_alpha)`. Each mask is a `uint8`
  image of the original size holding 0 or 255, cut to its box.
- `yoloperception.node`: `file_exists`, `read_autoware_class_names` (lower-cases
  the names and raises `ValueError` unless the first is `unknown`),
  `label_mapping`, the `DetectedObject` dataclass and `ObjectDetectorNode`.

## The detection node

`ObjectDetectorNode(detector, class_names, autoware_class_names,
confidence_threshold=0.3, debug_visualizer=False)` takes any object with
`detect(image, conf_threshold)` and `draw_bounding_box(image, detections)`,
such as a `PoseDetector`. `label_mapping` matches each perception label after
the first (which stands for `unknown`) with the first detector class of the
same name.

`on_image(data)` decodes a compressed image (anything Pillow reads), runs the
detector and returns a list of `DetectedObject` records with `roi`,
`existence_probability`, `label` and `probability` (always 1.0). Detections
whose class has no mapped label are dropped. Empty or undecodable data raises
`ValueError`. With `debug_visualizer` on, the image with the kept detections
drawn on it is stored in the node's `visualization` attribute.

## Install

```
pip install .
pip install ".[test]"   # with pytest
```

## Example

```python
import numpy as np
from yoloperception.segmentation import SegDetector

class_names = ["person", "car"]

def model(blob):
    # run your network here; this stand-in finds nothing
    n = 8400
    output0 = np.zeros((1, 4 + len(class_names) + 32, n), dtype=np.float32)
    output1 = np.zeros((1, 32, 160, 160), dtype=np.float32)
    return output0, output1

detector = SegDetector(model, class_names, input_shape=(640, 640), dynamic=False)
image = np.zeros((480, 640, 3), dtype=np.uint8)
results = detector.segment(image, conf_threshold=0.4, iou_threshold=0.45)
detector.draw_segmentations_and_boxes(image, results, mask_alpha=0.5)
```

The lower-level pieces work on their own:

```python
from yoloperception.geometry import BoundingBox, nms_boxes

boxes = [BoundingBox(0, 0, 10, 10), BoundingBox(1, 1, 10, 10)]
keep = nms_boxes(boxes, [0.9, 0.8], score_threshold=0.5, nms_threshold=0.45)
# keep == [0]
```

## What it does not do

- It does not load model files or run inference; the model is a callable you
  pass in.
- The detection node does not subscribe to or publish on any message bus. It
  is a plain object: you call `on_image` and use the returned list.
- There is no command-line program.

## Tests

```
pytest
```