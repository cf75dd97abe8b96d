"""
Model loading utilities for the ONNX segmentation models.

The loader:
 - retrieves model weights over HTTP (with progress) or from local disk,
 - optionally keeps a copy in `BGREMOVER_MODEL_CACHE_DIR`,
 - builds an ONNX Runtime session from the bytes,
 - keeps at most one engine alive per `Session` for inference callers.
"""

from __future__ import annotations

import contextlib
import hashlib
import logging
import os
from pathlib import Path
from threading import Lock
from typing import Callable, Optional
from urllib.parse import urlparse

import numpy as np
import onnxruntime as ort
import requests

from . import config
from .exceptions import InferenceError, LoadError, NetworkError
from .registry import describe

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[float], None]


class _ProgressReporter:
    """Forward non-decreasing fractions and report completion exactly once."""

    def __init__(self, callback: Optional[ProgressCallback]):
        self._callback = callback
        self._last = 0.0

    def update(self, received: int, total: Optional[int]) -> None:
        if self._callback is None or not total:
            return
        fraction = received / total
        # 1.0 is reserved for `done`.
        if self._last <= fraction < 1.0:
            self._last = fraction
            self._callback(fraction)

    def done(self) -> None:
        if self._callback is not None:
            self._callback(1.0)


def _cache_path(location: str, cache_dir: Path) -> Path:
    """Different repos ship files with the same name, so prefix a URL digest."""
    digest = hashlib.sha256(location.encode("utf-8")).hexdigest()[:16]
    name = Path(urlparse(location).path).name or "model.onnx"
    return cache_dir / f"{digest}-{name}"


def _download(location: str, reporter: _ProgressReporter, settings: config.Settings) -> bytes:
    try:
        with requests.get(
            location, stream=True, timeout=(5, settings.request_timeout_seconds)
        ) as resp:
            resp.raise_for_status()
            length = resp.headers.get("Content-Length")
            total = int(length) if length and length.isdigit() else None
            if total is None:
                logger.info("No Content-Length for %s; progress unavailable", location)

            chunks = []
            received = 0
            for chunk in resp.iter_content(chunk_size=settings.download_chunk_size):
                if not chunk:
                    continue
                chunks.append(chunk)
                received += len(chunk)
                reporter.update(received, total)
    except requests.RequestException as exc:
        raise NetworkError(f"Failed to download model from {location}: {exc}") from exc
    return b"".join(chunks)


def _write_cache(cached: Path, data: bytes) -> None:
    """Write through a sibling file so a failed write never leaves a partial cache entry."""
    partial = cached.with_name(cached.name + ".part")
    try:
        cached.parent.mkdir(parents=True, exist_ok=True)
        partial.write_bytes(data)
        os.replace(partial, cached)
    except OSError as exc:
        logger.warning("Could not cache model at %s: %s", cached, exc)
        with contextlib.suppress(OSError):
            partial.unlink(missing_ok=True)


def fetch_model_bytes(
    location: str,
    on_progress: Optional[ProgressCallback] = None,
    settings: Optional[config.Settings] = None,
) -> bytes:
    """
    Return the raw model file behind `location`.

    HTTP(S) locations are streamed and report `received / Content-Length`
    through `on_progress`; anything else is read as a local path. The final
    1.0 is reported exactly once, after the bytes are complete.

    Raises:
        NetworkError: when the download fails.
        LoadError: when a local or cached file cannot be read.
    """
    settings = settings or config.get_settings()
    reporter = _ProgressReporter(on_progress)
    is_remote = urlparse(location).scheme in {"http", "https"}

    cached = None
    if is_remote and settings.model_cache_dir is not None:
        cached = _cache_path(location, Path(settings.model_cache_dir))
        if cached.exists():
            logger.info("Using cached model %s", cached)
            try:
                data = cached.read_bytes()
            except OSError as exc:
                raise LoadError(f"Could not read cached model at {cached}") from exc
            reporter.done()
            return data

    if is_remote:
        logger.info("Downloading model from %s", location)
        data = _download(location, reporter, settings)
        if cached is not None:
            _write_cache(cached, data)
    else:
        path = Path(location)
        logger.info("Reading model from %s", path)
        try:
            data = path.read_bytes()
        except OSError as exc:
            raise LoadError(f"Model file not readable at {path}") from exc

    reporter.done()
    return data


class OnnxEngine:
    """A loaded ONNX Runtime session that can be released explicitly."""

    def __init__(self, session: ort.InferenceSession):
        self._session: Optional[ort.InferenceSession] = session

    @property
    def released(self) -> bool:
        return self._session is None

    def run(self, input_tensor: np.ndarray) -> np.ndarray:
        """Feed the first model input and return the first output, flattened."""
        if self._session is None:
            raise InferenceError("Model not loaded")
        input_name = self._session.get_inputs()[0].name
        try:
            outputs = self._session.run(None, {input_name: input_tensor})
        except Exception as exc:  # noqa: BLE001
            raise InferenceError(f"Inference failed: {exc}") from exc
        return np.asarray(outputs[0], dtype=np.float32).ravel()

    def release(self) -> None:
        # ONNX Runtime frees the session's memory once the last reference is gone.
        self._session = None


def load_engine(
    location: str,
    on_progress: Optional[ProgressCallback] = None,
    settings: Optional[config.Settings] = None,
) -> OnnxEngine:
    """
    Retrieve model weights and build an inference engine from them.

    Raises:
        NetworkError: when the weights cannot be downloaded.
        LoadError: when ONNX Runtime rejects the model.
    """
    settings = settings or config.get_settings()
    model_bytes = fetch_model_bytes(location, on_progress, settings=settings)
    try:
        session = ort.InferenceSession(model_bytes, providers=list(settings.execution_providers))
    except Exception as exc:  # noqa: BLE001
        raise LoadError(f"Failed to build inference session for {location}: {exc}") from exc
    logger.info("Model loaded from %s with providers %s", location, session.get_providers())
    return OnnxEngine(session)


EngineLoader = Callable[[str, Optional[ProgressCallback]], OnnxEngine]


class Session:
    """
    Holds at most one loaded engine and the id of the model it came from.

    Owned by the caller and passed into the pipeline. Selecting the loaded
    model again is a no-op; selecting another one releases the current
    engine before loading. A load that has been superseded by a newer
    selection by the time it finishes is released instead of installed.
    """

    def __init__(self, loader: Optional[EngineLoader] = None):
        self._loader = loader or load_engine
        self._lock = Lock()
        self._engine = None
        self._model_id: Optional[str] = None
        self._requested_model_id: Optional[str] = None

    @property
    def model_id(self) -> Optional[str]:
        return self._model_id

    @property
    def requested_model_id(self) -> Optional[str]:
        """The most recent selection, which may still be waiting to load."""
        return self._requested_model_id

    @property
    def is_loaded(self) -> bool:
        return self._engine is not None

    def _release(self, engine, model_id: Optional[str]) -> None:
        try:
            engine.release()
            logger.info("Released engine for %s", model_id)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Failed to release engine for %s: %s", model_id, exc)

    def _release_current(self) -> None:
        if self._engine is not None:
            engine, model_id = self._engine, self._model_id
            self._engine = None
            self._model_id = None
            self._release(engine, model_id)

    def select_model(self, model_id: str, on_progress: Optional[ProgressCallback] = None) -> bool:
        """
        Make `model_id` the loaded model.

        Returns False when a newer selection superseded this one, in which
        case nothing from this call stays loaded.
        """
        descriptor = describe(model_id)
        self._requested_model_id = model_id

        with self._lock:
            if self._requested_model_id != model_id:
                logger.info("Selection of %s superseded before loading", model_id)
                return False
            if self._engine is not None and self._model_id == model_id:
                return True

            self._release_current()
            logger.info("Loading model %s (%s)", model_id, descriptor.display_name)
            engine = self._loader(descriptor.url, on_progress)

            if self._requested_model_id != model_id:
                logger.info("Discarding stale engine for %s", model_id)
                self._release(engine, model_id)
                return False

            self._engine = engine
            self._model_id = model_id
            return True

    def run(self, input_tensor: np.ndarray, model_id: Optional[str] = None) -> np.ndarray:
        """Run the loaded engine, optionally checking which model it is."""
        with self._lock:
            if self._engine is None:
                raise InferenceError("Model not loaded")
            if model_id is not None and model_id != self._model_id:
                raise InferenceError(
                    f"Model {model_id} is not loaded (current: {self._model_id})"
                )
            return self._engine.run(input_tensor)

    def close(self) -> None:
        """Release the loaded engine, if any."""
        with self._lock:
            self._release_current()
