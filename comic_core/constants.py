"""
Constants for the Comic Generation Pipeline

Provider endpoints, built-in model identifiers, style/era/aspect-ratio choices,
input limits and the default run values.
"""

# ---------- Credentials ----------

GEMINI_API_KEY_ENV_VAR = "GEMINI_API_KEY"
GEMINI_API_KEY_FALLBACK_ENV_VAR = "API_KEY"
HUGGINGFACE_API_KEY_ENV_VAR = "HUGGINGFACE_API_KEY"


# ---------- Provider Endpoints ----------

GEMINI_API_BASE_URL = "https://generativelanguage.googleapis.com/v1beta/models"
POLLINATIONS_API_BASE_URL_IMAGE = "https://image.pollinations.ai"
POLLINATIONS_API_BASE_URL_TEXT = "https://text.pollinations.ai"
HUGGINGFACE_API_BASE_URL = "https://router.huggingface.co/hf-inference/models"


# ---------- Model Identifiers ----------

# Text models
GEMINI_2_5_FLASH_MODEL_ID = "gemini-2.5-flash"
GEMINI_2_5_PRO_MODEL_ID = "gemini-2.5-pro"
GEMINI_2_0_FLASH_MODEL_ID = "gemini-2.0-flash"

# Image generation models
GEMINI_IMAGEN_MODEL_ID = "imagen-3.0-generate-002"
GEMINI_FLASH_CHAT_IMAGE_GEN_MODEL_ID = "gemini-2.0-flash-preview-image-generation"

# Multimodal text model, also the default character analyzer
GEMINI_MULTIMODAL_TEXT_MODEL_ID = GEMINI_2_5_FLASH_MODEL_ID


# ---------- Style Choices ----------

IMAGE_STYLES = [
    "Photorealistic", "Anime", "Comic Book Art", "Fantasy Art", "Sci-Fi Concept Art",
    "Impressionistic", "Surreal", "Minimalist", "3D Render", "Pixel Art", "Watercolor", "Sketch",
]

COMIC_ERAS = [
    "Golden Age (1930s-50s)", "Silver Age (1950s-70s)", "Bronze Age (1970s-80s)",
    "Modern Age (1980s-Present)", "Futuristic",
]

ASPECT_RATIOS = {
    "16:9": {"width": 1024, "height": 576, "label": "16:9 (Widescreen)"},
    "4:3": {"width": 1024, "height": 768, "label": "4:3 (Standard)"},
    "1:1": {"width": 1024, "height": 1024, "label": "1:1 (Square)"},
    "3:4": {"width": 768, "height": 1024, "label": "3:4 (Portrait)"},
    "9:16": {"width": 576, "height": 1024, "label": "9:16 (Tall Portrait)"},
}

# Longest side requested from Pollinations
TARGET_POLLINATIONS_RESOLUTION = 3072


# ---------- Limits ----------

MAX_PAGES = 200
MIN_STORY_LENGTH = 10
MAX_STORY_LENGTH = 10000
MAX_CHAR_REF_IMAGES = 5

# Sentinel caption meaning "no text overlay"
EMPTY_CAPTION = " "


# ---------- Defaults ----------

DEFAULT_CONFIG_VALUES = {
    "text_model": GEMINI_2_5_FLASH_MODEL_ID,
    "image_model": GEMINI_IMAGEN_MODEL_ID,
    "character_analysis_model": GEMINI_MULTIMODAL_TEXT_MODEL_ID,
    "image_style": IMAGE_STYLES[0],
    "comic_era": COMIC_ERAS[3],
    "aspect_ratio": "16:9",
    "num_pages": 3,
    "include_captions": True,
    "overlay_text": False,
    "seed": 42,
}
