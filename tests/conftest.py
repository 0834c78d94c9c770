"""
Pytest Configuration and Fixtures

Shared fixtures for all tests. No test touches the network: provider calls
are patched with AsyncMock.
"""

import io
import json
from typing import Callable, List

import pytest
from PIL import Image

from comic_core.artifact import ApiProvider, Character, ModelOption, ReferenceImage, RunConfiguration
from comic_core.catalog import (
    CHARACTER_ANALYSIS_MODELS,
    DEFAULT_IMAGE_MODELS,
    DEFAULT_TEXT_MODELS,
    ModelCatalog,
)
from comic_core.config import Credentials
from comic_core.constants import GEMINI_2_5_FLASH_MODEL_ID, GEMINI_IMAGEN_MODEL_ID

POLLINATIONS_TEXT = ModelOption(id="openai", name="OpenAI (Pollinations)", provider=ApiProvider.POLLINATIONS, is_character_analysis_capable=True)
POLLINATIONS_IMAGE = ModelOption(id="flux", name="flux (Pollinations)", provider=ApiProvider.POLLINATIONS)


@pytest.fixture(autouse=True)
def isolated_output(tmp_path, monkeypatch):
    """Keep the call log and saved files inside the test's temp dir."""
    monkeypatch.setenv("COMIC_LLM_LOG_PATH", str(tmp_path / "llm_log.txt"))
    monkeypatch.setenv("COMIC_DATA_DIR", str(tmp_path / "data"))
    return tmp_path


@pytest.fixture
def png_bytes() -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", (64, 36), color="red").save(buffer, format="PNG")
    return buffer.getvalue()


@pytest.fixture
def reference_image(png_bytes) -> ReferenceImage:
    return ReferenceImage(data=png_bytes, mime_type="image/png")


@pytest.fixture
def catalog() -> ModelCatalog:
    """Built-in models plus one keyless Pollinations text and image model."""
    return ModelCatalog(
        text_models=DEFAULT_TEXT_MODELS + [POLLINATIONS_TEXT],
        image_models=DEFAULT_IMAGE_MODELS + [POLLINATIONS_IMAGE],
        analysis_models=CHARACTER_ANALYSIS_MODELS + [POLLINATIONS_TEXT],
    )


@pytest.fixture
def credentials() -> Credentials:
    return Credentials(gemini_api_key="test-gemini-key", huggingface_api_key="test-hf-key")


@pytest.fixture
def make_config() -> Callable[..., RunConfiguration]:
    def _make(**overrides) -> RunConfiguration:
        values = {
            "story_script": "Max the detective chases a thief across the rooftops of Neo City.",
            "num_pages": 3,
            "text_model": GEMINI_2_5_FLASH_MODEL_ID,
            "image_model": GEMINI_IMAGEN_MODEL_ID,
            "character_analysis_model": GEMINI_2_5_FLASH_MODEL_ID,
            "image_style": "Anime",
            "comic_era": "Modern Age (1980s-Present)",
        }
        values.update(overrides)
        return RunConfiguration(**values)
    return _make


@pytest.fixture
def max_with_images(reference_image) -> Character:
    return Character(name="Max", reference_images=[reference_image])


@pytest.fixture
def panel_script() -> Callable[..., str]:
    """Build a JSON panel array like a text model would return."""
    def _script(count: int, captions: List = None) -> str:
        records = []
        for i in range(count):
            caption = captions[i] if captions else f"Caption {i + 1}"
            records.append({"sceneDescription": f"Max runs across rooftop {i + 1}", "dialogueOrCaption": caption})
        return json.dumps(records)
    return _script
