from unittest.mock import MagicMock, patch

import pytest
import requests

from comic_core.artifact import ApiProvider, ModelOption
from comic_core.catalog import (
    CHARACTER_ANALYSIS_MODELS,
    DEFAULT_IMAGE_MODELS,
    DEFAULT_TEXT_MODELS,
    ModelCatalog,
    load_model_catalog,
    merge_models,
)
from comic_core.constants import GEMINI_2_5_FLASH_MODEL_ID, POLLINATIONS_API_BASE_URL_TEXT
from comic_core.errors import UnknownProviderDispatch

TEXT_MODELS = [
    {"name": "openai", "description": "OpenAI GPT-4o mini", "vision": True},
    {"name": "mistral", "description": "Mistral Small"},
]
IMAGE_MODELS = ["flux", "turbo"]


def _fake_get(url, timeout=None):
    response = MagicMock()
    response.raise_for_status.return_value = None
    response.json.return_value = TEXT_MODELS if url.startswith(POLLINATIONS_API_BASE_URL_TEXT) else IMAGE_MODELS
    return response


def test_default_catalog_lookup():
    catalog = ModelCatalog()
    assert catalog.find_text_model(GEMINI_2_5_FLASH_MODEL_ID).provider == ApiProvider.GEMINI
    assert catalog.find_analysis_model(GEMINI_2_5_FLASH_MODEL_ID).name.endswith("(for Character Analysis)")
    assert any(m.is_multimodal_image_capable for m in catalog.image_models)


def test_unknown_model_id():
    with pytest.raises(UnknownProviderDispatch, match="Unknown model provider for mystery"):
        ModelCatalog().find_image_model("mystery")


def test_merge_models_keeps_defaults_first():
    extra = [
        ModelOption(id=GEMINI_2_5_FLASH_MODEL_ID, provider=ApiProvider.POLLINATIONS),
        ModelOption(id="openai", provider=ApiProvider.POLLINATIONS),
    ]
    merged = merge_models(DEFAULT_TEXT_MODELS, extra)
    assert merged[:len(DEFAULT_TEXT_MODELS)] == DEFAULT_TEXT_MODELS
    assert [m.id for m in merged[len(DEFAULT_TEXT_MODELS):]] == ["openai"]


def test_offline_catalog_makes_no_requests():
    with patch("comic_core.catalog.requests.get") as get:
        catalog = load_model_catalog(fetch_remote=False)
    get.assert_not_called()
    assert catalog.image_models == DEFAULT_IMAGE_MODELS


def test_pollinations_models_are_merged():
    with patch("comic_core.catalog.requests.get", side_effect=_fake_get):
        catalog = load_model_catalog()

    assert catalog.load_error is None
    assert catalog.find_text_model("mistral").provider == ApiProvider.POLLINATIONS
    assert catalog.find_image_model("flux").provider == ApiProvider.POLLINATIONS
    assert catalog.find_analysis_model("openai").is_character_analysis_capable
    with pytest.raises(UnknownProviderDispatch):
        catalog.find_analysis_model("mistral")


def test_network_failure_falls_back_to_defaults():
    with patch("comic_core.catalog.requests.get", side_effect=requests.ConnectionError("offline")):
        catalog = load_model_catalog()

    assert catalog.load_error.startswith("Could not load models from Pollinations.ai")
    assert catalog.text_models == DEFAULT_TEXT_MODELS
    assert catalog.analysis_models == CHARACTER_ANALYSIS_MODELS
