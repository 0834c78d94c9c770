"""
Pollinations backend: keyless image generation by URL and text/vision calls
through the OpenAI-compatible chat endpoint.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import quote

from ..artifact import ModelOption, ReferenceImage
from ..constants import (
    ASPECT_RATIOS,
    POLLINATIONS_API_BASE_URL_IMAGE,
    POLLINATIONS_API_BASE_URL_TEXT,
    TARGET_POLLINATIONS_RESOLUTION,
)
from ..errors import CharacterAnalysisFailure, ProviderRequestError
from ..prompts import build_character_analysis_prompt
from .transport import get_bytes, log_text_call, post_json, reference_data_urls

PROVIDER = "Pollinations"


def _build_messages(
    system_instruction: Optional[str],
    text: str,
    image_urls: Optional[List[str]] = None,
) -> List[Dict[str, Any]]:
    """Build message list for the chat endpoint.

    Args:
        system_instruction: Optional system message
        text: User's text prompt
        image_urls: Optional image data URLs to include

    Returns:
        List of message dicts ready for the API
    """
    messages = []
    if system_instruction:
        messages.append({"role": "system", "content": system_instruction})

    content = [{"type": "text", "text": text}]
    for url in image_urls or []:
        content.append({"type": "image_url", "image_url": {"url": url}})

    messages.append({"role": "user", "content": content})
    return messages


def _extract_message_content(response: Dict[str, Any]) -> str:
    try:
        content = response["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError):
        raise ProviderRequestError(PROVIDER, "Response did not contain a message")
    return content or ""


def scaled_dimensions(aspect_ratio: str, model: Optional[ModelOption] = None) -> Tuple[int, int]:
    """Width/height for the aspect ratio with the longest side at the target resolution.

    A model's own width/height hints take precedence.
    """
    params = (model.generation_params if model else None) or {}
    if params.get("width") and params.get("height"):
        return params["width"], params["height"]

    ratio = ASPECT_RATIOS.get(aspect_ratio, ASPECT_RATIOS["16:9"])
    width, height = ratio["width"], ratio["height"]
    scale = TARGET_POLLINATIONS_RESOLUTION / max(width, height)
    return round(width * scale), round(height * scale)


def build_image_request(model: ModelOption, prompt: str, seed: Optional[int], aspect_ratio: str) -> Tuple[str, Dict[str, Any]]:
    width, height = scaled_dimensions(aspect_ratio, model)
    params = {"model": model.id, "width": width, "height": height, "nologo": "true"}
    if seed is not None:
        params["seed"] = seed
    url = f"{POLLINATIONS_API_BASE_URL_IMAGE}/prompt/{quote(prompt, safe='')}"
    return url, params


# ---------- Operations ----------

async def generate_text(model_id: str, prompt: str, system_instruction: Optional[str], logging: bool = True) -> str:
    start_time = datetime.now()
    payload = {"model": model_id, "messages": _build_messages(system_instruction, prompt)}
    response = await post_json(PROVIDER, f"{POLLINATIONS_API_BASE_URL_TEXT}/openai", payload)
    text = _extract_message_content(response)

    if logging:
        log_text_call(start_time, f"pollinations:{model_id}", prompt, text, system_instruction)
    return text


async def generate_image(model: ModelOption, prompt: str, count: int, seed: Optional[int], aspect_ratio: str) -> List[bytes]:
    images = []
    for i in range(count):
        # Distinct seeds so multiple images differ
        image_seed = seed + i if seed is not None else None
        url, params = build_image_request(model, prompt, image_seed, aspect_ratio)
        images.append(await get_bytes(PROVIDER, url, params))
    return images


async def analyze_character(model_id: str, name: str, reference_images: List[ReferenceImage], logging: bool = True) -> str:
    start_time = datetime.now()
    prompt = build_character_analysis_prompt(name)
    messages = _build_messages(None, prompt, reference_data_urls(reference_images))
    response = await post_json(PROVIDER, f"{POLLINATIONS_API_BASE_URL_TEXT}/openai", {"model": model_id, "messages": messages})
    description = _extract_message_content(response).strip()

    if logging:
        log_text_call(start_time, f"pollinations-analysis:{model_id}", prompt, description)

    if not description:
        raise CharacterAnalysisFailure(name, "the model returned an empty description")
    return description
