import pytest

from yoloperception.geometry import (
    BoundingBox,
    clamp,
    clip,
    nms_boxes,
    vector_product,
)


def test_default_box_is_empty():
    box = BoundingBox()
    assert (box.x, box.y, box.width, box.height) == (0, 0, 0, 0)
    assert box.area() == 0.0


@pytest.mark.parametrize("width,height", [(2, 3), (10, 10), (0, 7)])
def test_area_matches_size(width, height):
    box = BoundingBox(4, 5, width, height)
    assert box.area() == pytest.approx(width * height)


def test_intersect_with_self_is_self():
    box = BoundingBox(3, 4, 20, 30)
    assert box.intersect(box) == box


def test_intersect_partial_overlap():
    a = BoundingBox(0, 0, 10, 10)
    b = BoundingBox(5, 5, 10, 10)
    assert a.intersect(b) == BoundingBox(5, 5, 5, 5)
    assert a.intersect(b) == b.intersect(a)


def test_intersect_disjoint_has_zero_area():
    a = BoundingBox(0, 0, 10, 10)
    b = BoundingBox(50, 50, 10, 10)
    result = a.intersect(b)
    assert result.width == 0
    assert result.height == 0
    assert result.area() == 0.0


def test_clamp_within_and_outside():
    assert clamp(5, 0, 10) == 5
    assert clamp(-1, 0, 10) == 0
    assert clamp(11, 0, 10) == 10
    assert clamp(0.5, 0.0, 1.0) == 0.5


def test_clip_swaps_reversed_bounds():
    assert clip(15, 10, 0) == 10
    assert clip(-3, 10, 0) == 0
    assert clip(4, 10, 0) == 4


def test_clip_normal_bounds():
    assert clip(2.5, 0.0, 1.0) == 1.0
    assert clip(-2.5, 0.0, 1.0) == 0.0


def test_vector_product_of_tensor_shape():
    assert vector_product([1, 3, 640, 640]) == 1228800


def test_vector_product_empty_is_one():
    assert vector_product([]) == 1


def test_nms_empty_input():
    assert nms_boxes([], [], 0.5, 0.5) == []


def test_nms_identical_boxes_keeps_best():
    boxes = [BoundingBox(0, 0, 10, 10)] * 3
    scores = [0.6, 0.9, 0.7]
    assert nms_boxes(boxes, scores, 0.1, 0.5) == [1]


def test_nms_disjoint_boxes_sorted_by_score():
    boxes = [
        BoundingBox(0, 0, 10, 10),
        BoundingBox(100, 100, 10, 10),
        BoundingBox(200, 200, 10, 10),
    ]
    scores = [0.5, 0.9, 0.7]
    assert nms_boxes(boxes, scores, 0.1, 0.5) == [1, 2, 0]


def test_nms_score_threshold_filters():
    boxes = [BoundingBox(0, 0, 10, 10), BoundingBox(100, 100, 10, 10)]
    scores = [0.2, 0.8]
    assert nms_boxes(boxes, scores, 0.5, 0.5) == [1]
    assert nms_boxes(boxes, scores, 0.95, 0.5) == []


def test_nms_iou_threshold_controls_suppression():
    boxes = [BoundingBox(0, 0, 10, 10), BoundingBox(5, 5, 10, 10)]
    scores = [0.9, 0.8]
    assert nms_boxes(boxes, scores, 0.0, 0.1) == [0]
    assert nms_boxes(boxes, scores, 0.0, 0.5) == [0, 1]


def test_nms_equal_scores_keep_input_order():
    boxes = [BoundingBox(0, 0, 10, 10), BoundingBox(100, 0, 10, 10)]
    assert nms_boxes(boxes, [0.5, 0.5], 0.1, 0.5) == [0, 1]


def test_nms_result_indices_are_unique_and_valid():
    boxes = [BoundingBox(i * 3, 0, 10, 10) for i in range(8)]
    scores = [0.1 * (i + 1) for i in range(8)]
    kept = nms_boxes(boxes, scores, 0.0, 0.3)
    assert len(kept) == len(set(kept))
    assert all(0 <= i < len(boxes) for i in kept)
    assert kept[0] == 7


def test_nms_mismatched_lengths_raise():
    with pytest.raises(ValueError):
        nms_boxes([BoundingBox(0, 0, 1, 1)], [0.5, 0.6], 0.1, 0.5)