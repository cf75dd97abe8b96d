"""
Image loading and preprocessing for the segmentation models.

The source image is stretched (not letterboxed) to the model's square input
resolution, normalized according to the model family, and laid out as a
channel-planar float32 tensor of shape (1, 3, R, R).
"""

from __future__ import annotations

from dataclasses import dataclass
from io import BytesIO
import operator
from typing import Tuple

import numpy as np
from PIL import Image, ImageOps

from .exceptions import ContextError, DecodeError
from .registry import NormalizationFamily

IMAGENET_MEAN = np.array([0.485, 0.456, 0.406], dtype=np.float32)
IMAGENET_STD = np.array([0.229, 0.224, 0.225], dtype=np.float32)


@dataclass
class PreprocessResult:
    tensor: np.ndarray
    original_image: Image.Image
    orig_size: Tuple[int, int]  # (width, height)
    resized_size: Tuple[int, int]


def load_image(image_bytes: bytes) -> Image.Image:
    """Decode raw bytes into an upright image at native resolution."""
    try:
        image = Image.open(BytesIO(image_bytes))
        image.load()
        # Browsers honour EXIF orientation when drawing; do the same.
        image = ImageOps.exif_transpose(image)
    except Exception as exc:  # noqa: BLE001
        raise DecodeError("Invalid image data") from exc
    return image


def normalize(pixels: np.ndarray, normalization: NormalizationFamily) -> np.ndarray:
    """
    Map 8-bit RGB values (H, W, 3) into the model's input space.

    `unit` scales into [0, 1]; `imagenet` additionally standardizes each
    channel with the ImageNet mean/std.
    """
    values = pixels.astype(np.float32) / np.float32(255.0)
    if normalization == NormalizationFamily.IMAGENET:
        values = (values - IMAGENET_MEAN) / IMAGENET_STD
    elif normalization != NormalizationFamily.UNIT:
        raise ValueError(f"Unsupported normalization family: {normalization!r}")
    return values


def preprocess_image(
    image: Image.Image, input_resolution: int, normalization: NormalizationFamily
) -> PreprocessResult:
    """
    Resize `image` to a square `input_resolution` and build the input tensor.

    The returned `original_image` is the untouched source and must be kept
    for compositing the mask later.
    """
    try:
        if isinstance(input_resolution, bool):
            raise TypeError(input_resolution)
        input_resolution = operator.index(input_resolution)
    except TypeError:
        raise ValueError("input_resolution must be a positive integer") from None
    if input_resolution <= 0:
        raise ValueError("input_resolution must be a positive integer")
    normalization = NormalizationFamily(normalization)

    size = (input_resolution, input_resolution)
    try:
        resized = image.convert("RGBA").resize(size, Image.BILINEAR)
        rgba = np.asarray(resized, dtype=np.uint8)
    except (OSError, MemoryError, ValueError) as exc:
        raise ContextError("Could not prepare the resize surface") from exc

    values = normalize(rgba[..., :3], normalization)
    values = np.transpose(values, (2, 0, 1))  # HWC -> CHW
    tensor = np.ascontiguousarray(values[np.newaxis, ...], dtype=np.float32)

    return PreprocessResult(
        tensor=tensor,
        original_image=image,
        orig_size=image.size,
        resized_size=size,
    )


def load_and_preprocess_image_from_bytes(
    image_bytes: bytes, input_resolution: int, normalization: NormalizationFamily
) -> PreprocessResult:
    """Decode an image and turn it into a model-ready tensor."""
    image = load_image(image_bytes)
    return preprocess_image(image, input_resolution, normalization)
