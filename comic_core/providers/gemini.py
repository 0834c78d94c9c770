"""
Gemini backend: text generation, Imagen and multimodal image generation,
and character analysis over the Generative Language REST API.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from ..artifact import ReferenceImage
from ..constants import GEMINI_API_BASE_URL
from ..errors import CharacterAnalysisFailure, ImageGenerationFailure
from ..prompts import build_character_analysis_prompt
from .transport import decode_base64, encode_base64, log_text_call, post_json

PROVIDER = "Gemini"

IMAGE_ENHANCE_INSTRUCTION = (
    "You are a prompt engineer for an image generation model. Rewrite the user's comic panel brief as a single, "
    "vivid, detailed image prompt. Keep every character, action, style, era and text instruction it contains. "
    "Respond with the prompt only."
)


def _headers(api_key: str) -> Dict[str, str]:
    return {"x-goog-api-key": api_key}


def _url(model_id: str, method: str) -> str:
    return f"{GEMINI_API_BASE_URL}/{model_id}:{method}"


def _inline_parts(images: Optional[List[ReferenceImage]]) -> List[Dict[str, Any]]:
    return [
        {"inline_data": {"mime_type": img.mime_type, "data": encode_base64(img.data)}}
        for img in images or []
    ]


# ---------- Payload Builders ----------

def build_content_payload(
    prompt: str,
    system_instruction: Optional[str] = None,
    images: Optional[List[ReferenceImage]] = None,
    generation_config: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """Build a :generateContent request body."""
    parts = [{"text": prompt}] + _inline_parts(images)
    payload = {"contents": [{"role": "user", "parts": parts}]}

    if system_instruction:
        payload["systemInstruction"] = {"parts": [{"text": system_instruction}]}

    if generation_config:
        payload["generationConfig"] = generation_config

    return payload


def build_imagen_payload(prompt: str, count: int, seed: Optional[int], aspect_ratio: str) -> Dict[str, Any]:
    """Build an Imagen :predict request body."""
    parameters = {"sampleCount": count, "aspectRatio": aspect_ratio}
    if seed is not None:
        # Imagen only honours a seed when watermarking is disabled
        parameters["seed"] = seed
        parameters["addWatermark"] = False
    return {"instances": [{"prompt": prompt}], "parameters": parameters}


# ---------- Response Extraction ----------

def _candidate_parts(response: Dict[str, Any]) -> List[Dict[str, Any]]:
    try:
        return response.get("candidates", [{}])[0].get("content", {}).get("parts", []) or []
    except (IndexError, AttributeError):
        return []


def extract_text(response: Dict[str, Any]) -> str:
    return "".join(part.get("text", "") for part in _candidate_parts(response) if "text" in part)


def extract_inline_images(response: Dict[str, Any]) -> List[bytes]:
    images = []
    for part in _candidate_parts(response):
        inline = part.get("inlineData") or part.get("inline_data")
        if inline and inline.get("data"):
            images.append(decode_base64(inline["data"], PROVIDER))
    return images


def extract_imagen_images(response: Dict[str, Any]) -> List[bytes]:
    images = []
    for prediction in response.get("predictions", []) or []:
        data = prediction.get("bytesBase64Encoded")
        if data:
            images.append(decode_base64(data, PROVIDER))
    return images


# ---------- Operations ----------

async def generate_text(model_id: str, prompt: str, system_instruction: Optional[str], api_key: str, logging: bool = True) -> str:
    start_time = datetime.now()
    payload = build_content_payload(prompt, system_instruction)
    response = await post_json(PROVIDER, _url(model_id, "generateContent"), payload, _headers(api_key))
    text = extract_text(response)

    if logging:
        log_text_call(start_time, f"gemini:{model_id}", prompt, text, system_instruction)
    return text


async def generate_imagen(model_id: str, prompt: str, count: int, seed: Optional[int], aspect_ratio: str, api_key: str) -> List[bytes]:
    payload = build_imagen_payload(prompt, count, seed, aspect_ratio)
    response = await post_json(PROVIDER, _url(model_id, "predict"), payload, _headers(api_key))
    images = extract_imagen_images(response)
    if not images:
        raise ImageGenerationFailure("Gemini image generation did not return image data.")
    return images


async def generate_multimodal_image(
    model_id: str,
    prompt: str,
    count: int,
    seed: Optional[int],
    aspect_ratio: str,
    reference_images: Optional[List[ReferenceImage]],
    api_key: str,
) -> List[bytes]:
    """Generate images with a Gemini model that takes reference images as input."""
    generation_config = {"responseModalities": ["TEXT", "IMAGE"]}
    if seed is not None:
        generation_config["seed"] = seed

    payload = build_content_payload(
        f"{prompt} Aspect ratio: {aspect_ratio}.",
        images=reference_images,
        generation_config=generation_config,
    )

    images: List[bytes] = []
    for _ in range(count):
        response = await post_json(PROVIDER, _url(model_id, "generateContent"), payload, _headers(api_key))
        found = extract_inline_images(response)
        if not found:
            raise ImageGenerationFailure("Gemini image generation did not return image data.")
        images.append(found[0])
    return images


async def generate_enhanced_imagen(
    model_id: str,
    imagen_model_id: str,
    prompt: str,
    count: int,
    seed: Optional[int],
    aspect_ratio: str,
    api_key: str,
) -> List[bytes]:
    """Let a Gemini text model rewrite the prompt, then render it with Imagen."""
    enhanced = (await generate_text(model_id, prompt, IMAGE_ENHANCE_INSTRUCTION, api_key)).strip()
    return await generate_imagen(imagen_model_id, enhanced or prompt, count, seed, aspect_ratio, api_key)


async def analyze_character(model_id: str, name: str, reference_images: List[ReferenceImage], api_key: str, logging: bool = True) -> str:
    start_time = datetime.now()
    prompt = build_character_analysis_prompt(name)
    payload = build_content_payload(prompt, images=reference_images)
    response = await post_json(PROVIDER, _url(model_id, "generateContent"), payload, _headers(api_key))
    description = extract_text(response).strip()

    if logging:
        log_text_call(start_time, f"gemini-analysis:{model_id}", prompt, description)

    if not description:
        raise CharacterAnalysisFailure(name, "the model returned an empty description")
    return description
