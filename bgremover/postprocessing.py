"""Mask decoding and alpha compositing of model outputs onto the source image."""

from __future__ import annotations

from io import BytesIO
import logging
from pathlib import Path
from typing import Optional, Tuple

import cv2
import numpy as np
from PIL import Image

from . import config
from .exceptions import ContextError, InferenceError

logger = logging.getLogger(__name__)

# Outputs outside this band are taken to be logits. Different model families
# emit logits or probabilities and nothing in their metadata says which, so
# this is a best-effort guess rather than a guarantee.
LOGIT_LOW = -0.1
LOGIT_HIGH = 1.1


def _value_range(values: np.ndarray) -> Optional[Tuple[np.float32, np.float32]]:
    """Min/max ignoring NaN; None when nothing is comparable."""
    comparable = values[~np.isnan(values)]
    if comparable.size == 0:
        return None
    return comparable.min(), comparable.max()


def needs_sigmoid(values: np.ndarray) -> bool:
    """Return True when the output range suggests unbounded logits."""
    value_range = _value_range(np.asarray(values, dtype=np.float32))
    if value_range is None:
        return False
    low, high = value_range
    # Compare in float32 so a stored -0.1 or 1.1 sits exactly on the boundary.
    return bool(low < np.float32(LOGIT_LOW) or high > np.float32(LOGIT_HIGH))


def sigmoid(values: np.ndarray) -> np.ndarray:
    values = np.asarray(values, dtype=np.float64)
    with np.errstate(over="ignore"):
        return 1.0 / (1.0 + np.exp(-values))


def mask_to_alpha(output_tensor, mask_resolution: int) -> np.ndarray:
    """
    Turn a raw single-channel output into an (R, R) uint8 alpha raster.

    Raises:
        InferenceError: when the output does not hold R*R values.
    """
    values = np.asarray(output_tensor, dtype=np.float32).ravel()
    expected = mask_resolution * mask_resolution
    if values.size != expected:
        raise InferenceError(
            f"Model output has {values.size} values, expected {expected} "
            f"for a {mask_resolution}x{mask_resolution} mask"
        )

    apply_sigmoid = needs_sigmoid(values)
    logger.debug(
        "postprocess: output range=%s sigmoid=%s", _value_range(values), apply_sigmoid
    )
    probs = sigmoid(values) if apply_sigmoid else values.astype(np.float64)

    alpha = np.rint(probs * 255.0)
    alpha = np.nan_to_num(alpha, nan=0.0)
    alpha = np.clip(alpha, 0, 255).astype(np.uint8)
    return alpha.reshape(mask_resolution, mask_resolution)


def _maybe_dump_debug(alpha_small: np.ndarray, alpha_full: np.ndarray, debug_dir: Path) -> None:
    """Optionally write the low-res and upscaled masks when DEBUG is enabled."""
    try:
        debug_dir.mkdir(parents=True, exist_ok=True)
        cv2.imwrite(str(debug_dir / "mask_model.png"), alpha_small)
        cv2.imwrite(str(debug_dir / "mask_full.png"), alpha_full)
        logger.debug("postprocess: wrote debug outputs to %s", debug_dir)
    except Exception as exc:  # noqa: BLE001
        logger.warning("postprocess: failed to write debug outputs: %s", exc)


def compose_rgba(
    source_image: Image.Image,
    output_tensor,
    mask_resolution: int,
    settings: Optional[config.Settings] = None,
) -> Image.Image:
    """
    Stretch the decoded mask to the source size and use it as the alpha channel.

    RGB values of the source are kept exactly; any original alpha is discarded.
    """
    alpha_small = mask_to_alpha(output_tensor, mask_resolution)

    try:
        rgba = source_image.convert("RGBA")
        mask = Image.fromarray(alpha_small).resize(rgba.size, Image.BILINEAR)
        rgba.putalpha(mask)
    except (OSError, MemoryError, ValueError) as exc:
        raise ContextError("Could not prepare the compositing surface") from exc

    settings = settings or config.get_settings()
    if settings.debug:
        _maybe_dump_debug(alpha_small, np.asarray(mask), Path(settings.debug_output_dir))

    return rgba


def composite(
    source_image: Image.Image,
    output_tensor,
    mask_resolution: int,
    settings: Optional[config.Settings] = None,
) -> bytes:
    """Full post-processing: raw model output in, RGBA PNG bytes out."""
    out = compose_rgba(source_image, output_tensor, mask_resolution, settings=settings)
    buf = BytesIO()
    try:
        out.save(buf, format="PNG")
    except (OSError, ValueError) as exc:
        raise ContextError("Could not encode the result as PNG") from exc
    return buf.getvalue()
