"""
Local ONNX background removal package.

Exposes reusable primitives for describing the available segmentation models,
preprocessing images, loading the ONNX Runtime engine, and compositing the
predicted mask back onto the source image.
"""

__version__ = "0.1.0"
