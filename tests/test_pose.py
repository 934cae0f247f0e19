import numpy as np
import pytest

from yoloperception.pose import (
    POSE_FEATURES,
    PoseDetector,
    decode_pose_output,
)


def make_output(rows):
    """Build a (1, 56, N) tensor from (box, conf, keypoints) rows."""
    out = np.zeros((1, POSE_FEATURES, len(rows)), dtype=np.float32)
    for i, (box, conf, keypoints) in enumerate(rows):
        out[0, 0:4, i] = box
        out[0, 4, i] = conf
        for k, (kx, ky, logit) in enumerate(keypoints):
            offset = 5 + 3 * k
            out[0, offset, i] = kx
            out[0, offset + 1, i] = ky
            out[0, offset + 2, i] = logit
    return out


def default_keypoints():
    return [(100.0 + k, 200.0 + k, 0.0) for k in range(17)]


def test_single_detection_at_unit_scale():
    out = make_output([((100.0, 100.0, 40.0, 20.0), 0.9, default_keypoints())])
    dets = decode_pose_output(out, (640, 640), (640, 640), 0.4, 0.5)
    assert len(dets) == 1
    det = dets[0]
    assert det.box.width == 40
    assert det.box.height == 20
    assert det.box.x + det.box.width // 2 == 100
    assert det.box.y + det.box.height // 2 == 100
    assert det.conf == pytest.approx(0.9)
    assert det.class_id == 0
    assert len(det.keypoints) == 17
    for k, kp in enumerate(det.keypoints):
        assert kp.x == pytest.approx(100.0 + k)
        assert kp.y == pytest.approx(200.0 + k)
        assert kp.confidence == pytest.approx(0.5)


def test_below_threshold_is_dropped():
    out = make_output([((100.0, 100.0, 40.0, 20.0), 0.2, default_keypoints())])
    assert decode_pose_output(out, (640, 640), (640, 640), 0.4, 0.5) == []


def test_overlapping_boxes_suppressed():
    out = make_output(
        [
            ((100.0, 100.0, 40.0, 40.0), 0.8, default_keypoints()),
            ((101.0, 101.0, 40.0, 40.0), 0.9, default_keypoints()),
        ]
    )
    dets = decode_pose_output(out, (640, 640), (640, 640), 0.4, 0.5)
    assert len(dets) == 1
    assert dets[0].conf == pytest.approx(0.9)


def test_separate_boxes_kept_in_score_order():
    out = make_output(
        [
            ((100.0, 100.0, 40.0, 40.0), 0.6, default_keypoints()),
            ((400.0, 400.0, 40.0, 40.0), 0.9, default_keypoints()),
        ]
    )
    dets = decode_pose_output(out, (640, 640), (640, 640), 0.4, 0.5)
    assert [d.conf for d in dets] == pytest.approx([0.9, 0.6])


def test_wrong_feature_count_raises():
    out = np.zeros((1, 50, 3), dtype=np.float32)
    with pytest.raises(ValueError):
        decode_pose_output(out, (640, 640), (640, 640), 0.4, 0.5)


def test_wrong_rank_raises():
    out = np.zeros((POSE_FEATURES, 3), dtype=np.float32)
    with pytest.raises(ValueError):
        decode_pose_output(out, (640, 640), (640, 640), 0.4, 0.5)


def test_keypoints_clipped_to_image():
    keypoints = default_keypoints()
    keypoints[0] = (10000.0, -50.0, 5.0)
    out = make_output([((100.0, 100.0, 40.0, 20.0), 0.9, keypoints)])
    dets = decode_pose_output(out, (640, 480), (640, 480), 0.4, 0.5)
    kp = dets[0].keypoints[0]
    assert kp.x == pytest.approx(640 - 1)
    assert kp.y == pytest.approx(0.0)
    assert 0.5 < kp.confidence < 1.0


def test_boxes_clipped_inside_image():
    out = make_output([((630.0, 470.0, 100.0, 100.0), 0.9, default_keypoints())])
    dets = decode_pose_output(out, (640, 480), (640, 480), 0.4, 0.5)
    box = dets[0].box
    assert box.x >= 0 and box.y >= 0
    assert box.x + box.width <= 640
    assert box.y + box.height <= 480


def test_scale_down_maps_back_to_original():
    keypoints = default_keypoints()
    out = make_output([((200.0, 200.0, 40.0, 30.0), 0.9, keypoints)])
    dets = decode_pose_output(out, (1280, 1280), (640, 640), 0.4, 0.5)
    det = dets[0]
    assert det.box.width == 2 * 40
    assert det.box.height == 2 * 30
    assert det.keypoints[3].x == pytest.approx(2 * keypoints[3][0])
    assert det.keypoints[3].y == pytest.approx(2 * keypoints[3][1])


def test_letterbox_padding_removed():
    keypoints = default_keypoints()
    out = make_output([((320.0, 320.0, 40.0, 40.0), 0.9, keypoints)])
    dets = decode_pose_output(out, (640, 320), (640, 640), 0.4, 0.5)
    pad = (640 - 320) // 2
    assert dets[0].keypoints[0].y == pytest.approx(keypoints[0][1] - pad)
    assert dets[0].box.y + dets[0].box.height // 2 == 320 - pad


class RecordingModel:
    def __init__(self, output, wrap=False):
        self.output = output
        self.wrap = wrap
        self.blobs = []

    def __call__(self, blob):
        self.blobs.append(blob)
        return [self.output] if self.wrap else self.output


def test_detect_fixed_input_letterboxes_and_decodes():
    keypoints = default_keypoints()
    keypoints[0] = (300.0, 280.0, 0.0)
    output = make_output([((320.0, 320.0, 40.0, 40.0), 0.9, keypoints)])
    model = RecordingModel(output)
    detector = PoseDetector(model, (640, 640), False)
    image = np.zeros((480, 640, 3), dtype=np.uint8)
    dets = detector.detect(image, 0.4, 0.5)

    blob = model.blobs[0]
    assert blob.shape == (1, 3, 640, 640)
    assert blob.dtype == np.float32
    assert blob.min() >= 0.0 and blob.max() <= 1.0
    assert blob[0, 0, 0, 0] == pytest.approx(114 / 255.0)

    pad = (640 - 480) // 2
    assert len(dets) == 1
    assert dets[0].keypoints[0].x == pytest.approx(300.0)
    assert dets[0].keypoints[0].y == pytest.approx(280.0 - pad)


def test_detect_dynamic_input_uses_stride_padding():
    output = make_output([((320.0, 240.0, 40.0, 40.0), 0.9, default_keypoints())])
    model = RecordingModel(output, wrap=True)
    detector = PoseDetector(model, (640, 640), True)
    image = np.full((480, 640, 3), 200, dtype=np.uint8)
    dets = detector.detect(image)
    assert model.blobs[0].shape == (1, 3, 480, 640)
    assert dets[0].keypoints[5].y == pytest.approx(default_keypoints()[5][1])


def test_detect_with_nothing_above_threshold():
    output = make_output([((320.0, 240.0, 40.0, 40.0), 0.1, default_keypoints())])
    detector = PoseDetector(RecordingModel(output), (640, 640), False)
    image = np.zeros((480, 640, 3), dtype=np.uint8)
    assert detector.detect(image, 0.4, 0.5) == []


def test_draw_bounding_box_marks_image():
    output = make_output([((30.0, 30.0, 20.0, 20.0), 0.9, default_keypoints())])
    dets = decode_pose_output(output, (100, 100), (100, 100), 0.4, 0.5)
    detector = PoseDetector(RecordingModel(output), (100, 100), False)
    image = np.zeros((100, 100, 3), dtype=np.uint8)
    detector.draw_bounding_box(image, dets)
    box = dets[0].box
    assert tuple(image[box.y, box.x]) == (0, 255, 0)
    assert image.sum() > 0


def test_non_callable_model_rejected():
    with pytest.raises(TypeError):
        PoseDetector("model", (640, 640), False)


def test_bad_input_shape_rejected():
    with pytest.raises(ValueError):
        PoseDetector(RecordingModel(None), (-1, -1), True)