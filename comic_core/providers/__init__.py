"""
Provider Adapter

One capability interface over the Gemini, Pollinations and Hugging Face
backends. Dispatch depends only on the provider declared by the model's
catalog entry. Capability and credential checks happen before any network
call. No caching and no retries: a failed call is raised to the caller.
"""

from typing import List, Optional

from ..artifact import ApiProvider, ModelOption, ReferenceImage
from ..config import requires_api_key
from ..constants import GEMINI_IMAGEN_MODEL_ID
from ..errors import (
    ImageGenerationFailure,
    MissingCredentials,
    UnknownProviderDispatch,
    UnsupportedCapability,
)
from . import gemini, huggingface, pollinations

# Backends that can read images as input
MULTIMODAL_IMAGE_PROVIDERS = frozenset({ApiProvider.GEMINI})
CHARACTER_ANALYSIS_PROVIDERS = frozenset({ApiProvider.GEMINI, ApiProvider.POLLINATIONS})


def _require_api_key(model: ModelOption, api_key: Optional[str]) -> None:
    if requires_api_key(model.provider) and not api_key:
        raise MissingCredentials(model.provider.value, model.id)


def supports_reference_images(model: ModelOption) -> bool:
    return model.is_multimodal_image_capable and model.provider in MULTIMODAL_IMAGE_PROVIDERS


def supports_character_analysis(model: ModelOption) -> bool:
    return model.is_character_analysis_capable and model.provider in CHARACTER_ANALYSIS_PROVIDERS


async def generate_text(
    model: ModelOption,
    prompt: str,
    system_instruction: Optional[str] = None,
    api_key: Optional[str] = None,
    logging: bool = True,
) -> str:
    """Generate free-form text.

    Args:
        model: Resolved catalog entry of the text model
        prompt: User prompt
        system_instruction: Optional system message
        api_key: Provider key, required for Gemini and Hugging Face
        logging: If True (default), append the call to the call log

    Returns:
        Raw text of the model's answer
    """
    _require_api_key(model, api_key)

    if model.provider == ApiProvider.GEMINI:
        return await gemini.generate_text(model.id, prompt, system_instruction, api_key, logging=logging)
    elif model.provider == ApiProvider.POLLINATIONS:
        return await pollinations.generate_text(model.id, prompt, system_instruction, logging=logging)
    elif model.provider == ApiProvider.HUGGINGFACE:
        return await huggingface.generate_text(model.id, prompt, system_instruction, api_key, logging=logging)

    raise UnknownProviderDispatch(model.id, f"provider '{model.provider}'")


async def generate_image(
    model: ModelOption,
    prompt: str,
    count: int = 1,
    seed: Optional[int] = None,
    aspect_ratio: str = "16:9",
    reference_images: Optional[List[ReferenceImage]] = None,
    api_key: Optional[str] = None,
) -> List[bytes]:
    """Generate images from a text prompt, optionally guided by reference images.

    Args:
        model: Resolved catalog entry of the image model
        prompt: Image prompt
        count: Number of images to generate
        seed: Optional seed for providers that support one
        aspect_ratio: Aspect ratio key (e.g., "16:9")
        reference_images: Images passed as input; requires a multimodal-capable model
        api_key: Provider key, required for Gemini and Hugging Face

    Returns:
        List of image bytes, one per generated image
    """
    if count < 1:
        raise ValueError("count must be at least 1")

    if reference_images and not supports_reference_images(model):
        raise UnsupportedCapability(model.id, "reference image input")
    _require_api_key(model, api_key)

    if model.provider == ApiProvider.GEMINI:
        if model.id.startswith("imagen"):
            images = await gemini.generate_imagen(model.id, prompt, count, seed, aspect_ratio, api_key)
        elif model.is_multimodal_image_capable:
            images = await gemini.generate_multimodal_image(model.id, prompt, count, seed, aspect_ratio, reference_images or None, api_key)
        else:
            images = await gemini.generate_enhanced_imagen(model.id, GEMINI_IMAGEN_MODEL_ID, prompt, count, seed, aspect_ratio, api_key)
    elif model.provider == ApiProvider.POLLINATIONS:
        images = await pollinations.generate_image(model, prompt, count, seed, aspect_ratio)
    elif model.provider == ApiProvider.HUGGINGFACE:
        images = await huggingface.generate_image(model.id, prompt, count, seed, aspect_ratio, api_key)
    else:
        raise UnknownProviderDispatch(model.id, f"provider '{model.provider}'")

    if not images:
        raise ImageGenerationFailure(f"{model.provider.value} image generation did not return image data.")
    return images


async def analyze_character(
    model: ModelOption,
    name: str,
    reference_images: List[ReferenceImage],
    api_key: Optional[str] = None,
) -> str:
    """Describe a character's appearance from reference images."""
    if not supports_character_analysis(model):
        raise UnsupportedCapability(model.id, "character analysis")
    if not reference_images:
        raise ValueError(f"Character '{name}' has no reference images to analyze")
    _require_api_key(model, api_key)

    if model.provider == ApiProvider.GEMINI:
        return await gemini.analyze_character(model.id, name, reference_images, api_key)
    elif model.provider == ApiProvider.POLLINATIONS:
        return await pollinations.analyze_character(model.id, name, reference_images)

    raise UnknownProviderDispatch(model.id, f"provider '{model.provider}'")


__all__ = [
    "generate_text",
    "generate_image",
    "analyze_character",
    "supports_reference_images",
    "supports_character_analysis",
]
