"""
Static registry of the segmentation models the pipeline can run.

Every entry fixes the square input resolution and the normalization policy
its network was trained with. Insertion order is the display order.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, List

from .exceptions import UnknownModelError


class NormalizationFamily(str, Enum):
    IMAGENET = "imagenet"
    UNIT = "unit"


@dataclass(frozen=True)
class ModelDescriptor:
    model_id: str
    display_name: str
    url: str
    input_resolution: int
    normalization: NormalizationFamily


_HF_BG_REMOVER = "https://huggingface.co/robertwt7/bg-remover-models/resolve/main/onnx"
_HF_RMBG = "https://huggingface.co/briaai/RMBG-1.4/resolve/main/onnx"

MODELS: Dict[str, ModelDescriptor] = {
    descriptor.model_id: descriptor
    for descriptor in (
        ModelDescriptor(
            model_id="u2netp",
            display_name="Fast (u2netp)",
            url=f"{_HF_BG_REMOVER}/u2netp.onnx",
            input_resolution=320,
            normalization=NormalizationFamily.IMAGENET,
        ),
        ModelDescriptor(
            model_id="silueta",
            display_name="Balanced (silueta)",
            url=f"{_HF_BG_REMOVER}/silueta.onnx",
            input_resolution=320,
            normalization=NormalizationFamily.IMAGENET,
        ),
        ModelDescriptor(
            model_id="rmbg_quant",
            display_name="Ultra Quant (RMBG)",
            url=f"{_HF_RMBG}/model_quantized.onnx",
            input_resolution=1024,
            normalization=NormalizationFamily.UNIT,
        ),
        ModelDescriptor(
            model_id="rmbg_fp16",
            display_name="Ultra FP16 (RMBG)",
            url=f"{_HF_RMBG}/model_fp16.onnx",
            input_resolution=1024,
            normalization=NormalizationFamily.UNIT,
        ),
        ModelDescriptor(
            model_id="rmbg_full",
            display_name="Ultra Full (RMBG)",
            url=f"{_HF_RMBG}/model.onnx",
            input_resolution=1024,
            normalization=NormalizationFamily.UNIT,
        ),
    )
}


def describe(model_id: str) -> ModelDescriptor:
    """Return the descriptor for `model_id`."""
    try:
        return MODELS[model_id]
    except KeyError:
        raise UnknownModelError(f"Unknown model: {model_id!r}") from None


def all_ids() -> List[str]:
    return list(MODELS)
