"""Error taxonomy for the background removal pipeline."""


class BackgroundRemovalError(Exception):
    """Base class for every failure raised by the pipeline."""


class DecodeError(BackgroundRemovalError, ValueError):
    """The input bytes could not be decoded as a raster image."""


class ContextError(BackgroundRemovalError):
    """A raster surface could not be allocated, converted or encoded."""


class NetworkError(BackgroundRemovalError):
    """Model weights could not be retrieved over the network."""


class LoadError(BackgroundRemovalError):
    """Model weights were retrieved but the engine could not be built."""


class InferenceError(BackgroundRemovalError):
    """The engine failed to execute or broke its output contract."""


class UnknownModelError(BackgroundRemovalError, ValueError):
    """The requested model id is not in the registry."""
