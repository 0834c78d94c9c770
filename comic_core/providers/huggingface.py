"""
Hugging Face backend: text and image generation over the hosted inference API.
"""

from datetime import datetime
from typing import Any, List, Optional

from ..constants import ASPECT_RATIOS, HUGGINGFACE_API_BASE_URL
from ..errors import ImageGenerationFailure, ProviderRequestError
from .transport import log_text_call, post_for_bytes, post_json

PROVIDER = "HuggingFace"

# Image bodies start with one of these signatures; anything else is an error payload
_IMAGE_SIGNATURES = (b"\x89PNG", b"\xff\xd8", b"RIFF", b"GIF8")


def _headers(api_key: str):
    return {"Authorization": f"Bearer {api_key}"}


def _url(model_id: str) -> str:
    return f"{HUGGINGFACE_API_BASE_URL}/{model_id}"


def extract_generated_text(response: Any) -> str:
    """Handle both [{"generated_text": ...}] and {"generated_text": ...} shapes."""
    if isinstance(response, list) and response:
        response = response[0]
    if isinstance(response, dict):
        if "error" in response:
            raise ProviderRequestError(PROVIDER, str(response["error"]))
        return response.get("generated_text", "") or ""
    raise ProviderRequestError(PROVIDER, "Response did not contain generated text")


async def generate_text(model_id: str, prompt: str, system_instruction: Optional[str], api_key: str, logging: bool = True) -> str:
    start_time = datetime.now()
    full_prompt = f"{system_instruction}\n\n{prompt}" if system_instruction else prompt
    payload = {
        "inputs": full_prompt,
        "parameters": {"max_new_tokens": 1024, "return_full_text": False},
    }
    response = await post_json(PROVIDER, _url(model_id), payload, _headers(api_key))
    text = extract_generated_text(response)

    if logging:
        log_text_call(start_time, f"huggingface:{model_id}", prompt, text, system_instruction)
    return text


async def generate_image(model_id: str, prompt: str, count: int, seed: Optional[int], aspect_ratio: str, api_key: str) -> List[bytes]:
    ratio = ASPECT_RATIOS.get(aspect_ratio, ASPECT_RATIOS["16:9"])
    images = []
    for i in range(count):
        parameters = {"width": ratio["width"], "height": ratio["height"]}
        if seed is not None:
            parameters["seed"] = seed + i
        body = await post_for_bytes(PROVIDER, _url(model_id), {"inputs": prompt, "parameters": parameters}, _headers(api_key))
        if not body.startswith(_IMAGE_SIGNATURES):
            raise ImageGenerationFailure(f"Hugging Face did not return image data: {body[:200].decode('utf-8', errors='replace')}")
        images.append(body)
    return images
