"""Letterboxing, output decoding, NMS and drawing for YOLO pose and segmentation models, with a labelling detection node."""

__version__ = "0.1.0"