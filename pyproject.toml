[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "yoloperception"
version = "0.1.0"
description = "Decoding, non-maximum suppression, letterboxing and drawing for YOLO pose and segmentation models"
requires-python = ">=3.10"
dependencies = [
    "numpy",
    "pillow",
]
keywords = ["yolo", "object-detection", "segmentation", "pose-estimation", "nms", "letterbox"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Intended Audience :: Science/Research",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Operating System :: OS Independent",
    "Topic :: Scientific/Engineering :: Image Recognition",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["yoloperception"]

[tool.pytest.ini_options]
addopts = "-ra"
