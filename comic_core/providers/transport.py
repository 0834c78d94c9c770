"""
HTTP transport and call logging shared by the provider backends.
"""

import base64
import binascii
import json
from datetime import datetime
from typing import Any, Dict, List, Optional

import aiohttp

from ..artifact import ReferenceImage
from ..config import get_llm_log_path, get_request_timeout
from ..errors import ProviderRequestError


def _log_llm_call(start_time: datetime, end_time: datetime, tokens_in: int, tokens_out: int, function_name: str, prompt_preview: str):
    """Log LLM call information to the call log file"""
    duration = (end_time - start_time).total_seconds()
    log_line = f"{start_time.strftime('%Y-%m-%d %H:%M:%S')} | {function_name} | Duration: {duration:.2f}s | Tokens In: {tokens_in} | Tokens Out: {tokens_out} | Prompt: {prompt_preview}\n"

    with open(get_llm_log_path(), "a", encoding="utf-8") as f:
        f.write(log_line)


def estimate_tokens(*texts: Optional[str]) -> int:
    """Rough token count estimation (~4 characters per token)"""
    return sum(len(t) for t in texts if t) // 4


def log_text_call(start_time: datetime, function_name: str, prompt: str, output: str, system_instruction: Optional[str] = None):
    prompt_preview = prompt[:20] + "..." if len(prompt) > 20 else prompt
    _log_llm_call(
        start_time,
        datetime.now(),
        estimate_tokens(system_instruction, prompt),
        estimate_tokens(output),
        function_name,
        prompt_preview.replace("\n", " "),
    )


# ---------- Image Encoding ----------

def encode_base64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def decode_base64(data: str, provider: str) -> bytes:
    try:
        return base64.b64decode(data)
    except (binascii.Error, ValueError) as e:
        raise ProviderRequestError(provider, f"Failed to decode base64 image data: {e}")


def to_data_url(data: bytes, mime_type: str = "image/png") -> str:
    return f"data:{mime_type};base64,{encode_base64(data)}"


def reference_data_urls(images: Optional[List[ReferenceImage]]) -> List[str]:
    return [to_data_url(img.data, img.mime_type) for img in images or []]


# ---------- HTTP ----------

def _timeout() -> aiohttp.ClientTimeout:
    return aiohttp.ClientTimeout(total=get_request_timeout())


def _error_snippet(text: str) -> str:
    return text[:300] if text else "(empty body)"


async def post_json(provider: str, url: str, payload: Dict[str, Any], headers: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
    """POST a JSON payload and return the decoded JSON response."""
    request_headers = {"Content-Type": "application/json"}
    request_headers.update(headers or {})

    async with aiohttp.ClientSession(timeout=_timeout()) as session:
        async with session.post(url, headers=request_headers, data=json.dumps(payload)) as response:
            text = await response.text()
            if response.status >= 400:
                raise ProviderRequestError(provider, _error_snippet(text), status=response.status)
            try:
                return json.loads(text)
            except json.JSONDecodeError:
                raise ProviderRequestError(provider, f"Non-JSON response: {_error_snippet(text)}", status=response.status)


async def post_for_bytes(provider: str, url: str, payload: Dict[str, Any], headers: Optional[Dict[str, str]] = None) -> bytes:
    """POST a JSON payload and return the raw response body (e.g. image bytes)."""
    request_headers = {"Content-Type": "application/json"}
    request_headers.update(headers or {})

    async with aiohttp.ClientSession(timeout=_timeout()) as session:
        async with session.post(url, headers=request_headers, data=json.dumps(payload)) as response:
            body = await response.read()
            if response.status >= 400:
                raise ProviderRequestError(provider, _error_snippet(body.decode("utf-8", errors="replace")), status=response.status)
            return body


async def get_bytes(provider: str, url: str, params: Optional[Dict[str, Any]] = None) -> bytes:
    """GET a URL and return the raw response body, rejecting non-image payloads."""
    async with aiohttp.ClientSession(timeout=_timeout()) as session:
        async with session.get(url, params=params) as response:
            body = await response.read()
            if response.status >= 400:
                raise ProviderRequestError(provider, _error_snippet(body.decode("utf-8", errors="replace")), status=response.status)
            content_type = response.headers.get("Content-Type", "")
            if not content_type.startswith("image/"):
                raise ProviderRequestError(provider, f"Expected an image but got '{content_type or 'unknown'}'", status=response.status)
            return body
