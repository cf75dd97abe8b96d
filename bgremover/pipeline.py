"""
High-level background removal pipeline.

`process_image_bytes` is the main entry point. It keeps orchestration simple:
select model -> bytes in -> preprocessing -> ONNX inference -> mask
compositing -> RGBA PNG bytes out. Every stage must finish before the next
one starts, and any failure aborts the request.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Optional

from . import config, registry
from .exceptions import LoadError
from .model_loader import ProgressCallback, Session
from .postprocessing import composite
from .preprocessing import load_and_preprocess_image_from_bytes

logger = logging.getLogger(__name__)

StatusCallback = Callable[[str], None]


def process_image_bytes(
    image_bytes: bytes,
    model_id: str,
    session: Session,
    on_progress: Optional[ProgressCallback] = None,
    on_status: Optional[StatusCallback] = None,
    settings: Optional[config.Settings] = None,
) -> bytes:
    """
    Full pipeline from raw bytes to RGBA PNG bytes.

    `on_progress` receives the weight download fraction when the model has
    to be loaded; `on_status` receives a short description of each stage.
    `settings` defaults to the cached environment settings.

    Raises:
        BackgroundRemovalError: subclass naming the stage that failed.
    """

    def status(message: str) -> None:
        logger.debug("pipeline: %s", message)
        if on_status is not None:
            on_status(message)

    descriptor = registry.describe(model_id)

    status(f"Loading model {descriptor.display_name}...")
    if not session.select_model(model_id, on_progress):
        raise LoadError(f"Loading {model_id} was superseded by another model selection")

    status("Processing image...")
    preprocessed = load_and_preprocess_image_from_bytes(
        image_bytes, descriptor.input_resolution, descriptor.normalization
    )

    status("Running inference...")
    start = time.perf_counter()
    output = session.run(preprocessed.tensor, model_id=model_id)
    elapsed_ms = (time.perf_counter() - start) * 1000.0
    logger.info("Inference with %s took %.2fms", model_id, elapsed_ms)

    status("Applying mask...")
    png_bytes = composite(
        preprocessed.original_image, output, descriptor.input_resolution, settings=settings
    )
    status(f"Done in {elapsed_ms:.0f}ms")
    return png_bytes
