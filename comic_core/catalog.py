"""
Model Catalog

Built-in model entries plus the loader that merges models discovered from
Pollinations. The catalog is read-only once loaded and safe to share between
runs.
"""

from typing import Any, Dict, List, Optional

import requests
from pydantic import Field

from .artifact import ApiProvider, ModelOption, StrictModel
from .config import get_request_timeout
from .constants import (
    GEMINI_2_0_FLASH_MODEL_ID,
    GEMINI_2_5_FLASH_MODEL_ID,
    GEMINI_2_5_PRO_MODEL_ID,
    GEMINI_FLASH_CHAT_IMAGE_GEN_MODEL_ID,
    GEMINI_IMAGEN_MODEL_ID,
    GEMINI_MULTIMODAL_TEXT_MODEL_ID,
    POLLINATIONS_API_BASE_URL_IMAGE,
    POLLINATIONS_API_BASE_URL_TEXT,
)
from .errors import UnknownProviderDispatch


# ---------- Built-in Models ----------

DEFAULT_TEXT_MODELS: List[ModelOption] = [
    ModelOption(id=GEMINI_2_5_FLASH_MODEL_ID, name=f"Gemini 2.5 Flash ({GEMINI_2_5_FLASH_MODEL_ID})", provider=ApiProvider.GEMINI, is_character_analysis_capable=True),
    ModelOption(id=GEMINI_2_0_FLASH_MODEL_ID, name=f"Gemini 2.0 Flash ({GEMINI_2_0_FLASH_MODEL_ID})", provider=ApiProvider.GEMINI, is_character_analysis_capable=True),
    ModelOption(id=GEMINI_2_5_PRO_MODEL_ID, name=f"Gemini 2.5 Pro ({GEMINI_2_5_PRO_MODEL_ID})", provider=ApiProvider.GEMINI, is_character_analysis_capable=True),
    ModelOption(id="gpt2", name="GPT-2 (HuggingFace)", provider=ApiProvider.HUGGINGFACE),
    ModelOption(id="bigscience/bloom", name="Bloom (HuggingFace)", provider=ApiProvider.HUGGINGFACE),
]

# Gemini text models that can describe characters from images
CHARACTER_ANALYSIS_MODELS: List[ModelOption] = [
    m.model_copy(update={"name": f"{m.name} (for Character Analysis)"})
    for m in DEFAULT_TEXT_MODELS
    if m.provider == ApiProvider.GEMINI and m.is_character_analysis_capable
]

DEFAULT_IMAGE_MODELS: List[ModelOption] = [
    ModelOption(id=GEMINI_IMAGEN_MODEL_ID, name=f"Gemini Imagen ({GEMINI_IMAGEN_MODEL_ID})", provider=ApiProvider.GEMINI),
    ModelOption(id=GEMINI_MULTIMODAL_TEXT_MODEL_ID, name=f"Use Gemini {GEMINI_MULTIMODAL_TEXT_MODEL_ID} to Enhance Prompt for Imagen", provider=ApiProvider.GEMINI),
    ModelOption(id=GEMINI_FLASH_CHAT_IMAGE_GEN_MODEL_ID, name=f"Gemini Multimodal Image Gen ({GEMINI_FLASH_CHAT_IMAGE_GEN_MODEL_ID})", provider=ApiProvider.GEMINI, is_multimodal_image_capable=True),
    ModelOption(id="stabilityai/stable-diffusion-2", name="Stable Diffusion 2 (HuggingFace)", provider=ApiProvider.HUGGINGFACE),
    ModelOption(id="CompVis/stable-diffusion-v1-4", name="Stable Diffusion v1-4 (HuggingFace)", provider=ApiProvider.HUGGINGFACE),
]


# ---------- Catalog ----------

class ModelCatalog(StrictModel):
    """Text, image and analysis model sets available to the pipeline."""
    text_models: List[ModelOption] = Field(default_factory=lambda: list(DEFAULT_TEXT_MODELS))
    image_models: List[ModelOption] = Field(default_factory=lambda: list(DEFAULT_IMAGE_MODELS))
    analysis_models: List[ModelOption] = Field(default_factory=lambda: list(CHARACTER_ANALYSIS_MODELS))
    load_error: Optional[str] = Field(None, description="Why remote models could not be loaded, if they could not.")

    @staticmethod
    def _find(models: List[ModelOption], model_id: str, kind: str) -> ModelOption:
        for model in models:
            if model.id == model_id:
                return model
        raise UnknownProviderDispatch(model_id, f"not in the {kind} model catalog")

    def find_text_model(self, model_id: str) -> ModelOption:
        return self._find(self.text_models, model_id, "text")

    def find_image_model(self, model_id: str) -> ModelOption:
        return self._find(self.image_models, model_id, "image")

    def find_analysis_model(self, model_id: str) -> ModelOption:
        return self._find(self.analysis_models, model_id, "character analysis")


def merge_models(defaults: List[ModelOption], extra: List[ModelOption]) -> List[ModelOption]:
    """Append extra models to the defaults, skipping ids already present."""
    combined = list(defaults)
    existing_ids = {m.id for m in defaults}
    for model in extra:
        if model.id not in existing_ids:
            combined.append(model)
            existing_ids.add(model.id)
    return combined


# ---------- Pollinations Discovery ----------

def _get_json(url: str) -> Any:
    response = requests.get(url, timeout=min(get_request_timeout(), 30))
    response.raise_for_status()
    return response.json()


def _is_vision_model(entry: Dict[str, Any]) -> bool:
    if entry.get("vision"):
        return True
    return "image" in (entry.get("input_modalities") or [])


def get_pollinations_text_models() -> List[ModelOption]:
    """Fetch Pollinations text models. Vision models double as character analyzers."""
    models = []
    for entry in _get_json(f"{POLLINATIONS_API_BASE_URL_TEXT}/models"):
        if isinstance(entry, str):
            entry = {"name": entry}
        model_id = entry.get("name")
        if not model_id:
            continue
        description = entry.get("description") or model_id
        models.append(ModelOption(
            id=model_id,
            name=f"{description} (Pollinations)",
            provider=ApiProvider.POLLINATIONS,
            is_character_analysis_capable=_is_vision_model(entry),
        ))
    return models


def get_pollinations_image_models() -> List[ModelOption]:
    models = []
    for entry in _get_json(f"{POLLINATIONS_API_BASE_URL_IMAGE}/models"):
        model_id = entry if isinstance(entry, str) else entry.get("name")
        if not model_id:
            continue
        models.append(ModelOption(id=model_id, name=f"{model_id} (Pollinations)", provider=ApiProvider.POLLINATIONS))
    return models


def load_model_catalog(fetch_remote: bool = True) -> ModelCatalog:
    """Load the model catalog, falling back to built-in models on network failure.

    Args:
        fetch_remote: If False, only built-in models are returned

    Returns:
        ModelCatalog with built-in models first, then discovered ones
    """
    catalog = ModelCatalog()
    if not fetch_remote:
        return catalog

    try:
        pollinations_text = get_pollinations_text_models()
        pollinations_image = get_pollinations_image_models()
    except (requests.RequestException, ValueError) as e:
        print(f"⚠️  Could not load models from Pollinations.ai. Only default models will be available. ({e})")
        catalog.load_error = f"Could not load models from Pollinations.ai: {e}"
        return catalog

    catalog.text_models = merge_models(DEFAULT_TEXT_MODELS, pollinations_text)
    catalog.image_models = merge_models(DEFAULT_IMAGE_MODELS, pollinations_image)
    catalog.analysis_models = merge_models(
        CHARACTER_ANALYSIS_MODELS,
        [m for m in pollinations_text if m.is_character_analysis_capable],
    )
    print(f"📚 Model catalog: {len(catalog.text_models)} text, {len(catalog.image_models)} image, {len(catalog.analysis_models)} analysis models")
    return catalog
