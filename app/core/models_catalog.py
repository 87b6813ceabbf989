from dataclasses import asdict, dataclass
from typing import Dict, List, Optional, Tuple


@dataclass(frozen=True)
class ModelSpec:
    id: str
    name: str
    type: str  # model name sent to the gateway
    provider: str
    cost: float  # informational, USD per image
    color: str

    def public(self) -> Dict[str, object]:
        return asdict(self)


AVAILABLE_MODELS: Tuple[ModelSpec, ...] = (
    ModelSpec(
        id="gemini-2.5-flash-image",
        name="Gemini 2.5 Flash Image",
        type="gemini-2.5-flash-image",
        provider="Google",
        cost=0.02,
        color="#4285F4",
    ),
)

OUTPUT_STYLES: Tuple[str, ...] = ("realistic", "artistic", "anime", "cartoon", "svg")
DEFAULT_OUTPUT_STYLE = "realistic"
DEFAULT_IMAGE_COUNT = 1
DEFAULT_DIMENSIONS: Dict[str, int] = {"width": 1024, "height": 1024}


def _build_index(models: Tuple[ModelSpec, ...]) -> Dict[str, ModelSpec]:
    if not models:
        raise RuntimeError("AVAILABLE_MODELS must contain at least one model")
    index: Dict[str, ModelSpec] = {}
    for model in models:
        if model.id in index:
            raise RuntimeError(f"Duplicate model id in AVAILABLE_MODELS: {model.id}")
        index[model.id] = model
    return index


_MODELS_BY_ID = _build_index(AVAILABLE_MODELS)


def get_default_model() -> ModelSpec:
    return AVAILABLE_MODELS[0]


def get_model_by_id(model_id: Optional[str]) -> Optional[ModelSpec]:
    if not model_id:
        return None
    return _MODELS_BY_ID.get(model_id)


def resolve_model(model_id: Optional[str]) -> ModelSpec:
    """Return the requested model, or the default one when unspecified or unknown."""
    return get_model_by_id(model_id) or get_default_model()


def get_public_models() -> List[Dict[str, object]]:
    return [model.public() for model in AVAILABLE_MODELS]
