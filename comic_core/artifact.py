from __future__ import annotations

import re
from enum import Enum
from typing import Dict, List, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .constants import (
    ASPECT_RATIOS,
    EMPTY_CAPTION,
    MAX_CHAR_REF_IMAGES,
    MAX_PAGES,
    MAX_STORY_LENGTH,
    MIN_STORY_LENGTH,
)


# ---------- Base (forbid unknown keys) ----------

class StrictModel(BaseModel):
    """Base model that rejects unknown fields to keep artifacts clean."""
    model_config = ConfigDict(extra="forbid")


# ---------- Providers & Catalog ----------

class ApiProvider(str, Enum):
    GEMINI = "Gemini"
    POLLINATIONS = "Pollinations"
    HUGGINGFACE = "HuggingFace"


class ModelOption(StrictModel):
    """A read-only catalog entry used for capability dispatch."""
    model_config = ConfigDict(extra="forbid", frozen=True)

    id: str = Field(..., description="Provider model identifier (e.g., 'gemini-2.5-flash', 'flux').")
    name: Optional[str] = Field(None, description="Human-readable label shown in model pickers.")
    provider: ApiProvider = Field(..., description="Backend that serves this model.")
    is_multimodal_image_capable: bool = Field(False, description="Image model that accepts reference images as input.")
    is_character_analysis_capable: bool = Field(False, description="Text model that can describe a character from images.")
    generation_params: Optional[Dict[str, int]] = Field(None, description="Provider-specific width/height hints.")

    @property
    def label(self) -> str:
        return self.name or self.id


# ---------- Characters ----------

class ReferenceImage(StrictModel):
    """A binary reference image owned by the session."""
    data: bytes = Field(..., exclude=True, description="Raw image bytes.")
    mime_type: str = Field("image/png", description="MIME type of the image bytes.")


class Character(StrictModel):
    """A named character whose look should stay consistent across panels."""
    id: str = Field(default_factory=lambda: uuid4().hex, description="Stable identifier for this session.")
    name: str = Field(..., description="Name matched as a whole word against panel text.")
    reference_images: List[ReferenceImage] = Field(default_factory=list, description="Ordered reference images of the character.")
    text_description: Optional[str] = Field(None, description="Description derived by character analysis, unset until a successful analysis.")

    @field_validator("name")
    @classmethod
    def _name_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Character name must not be empty")
        return value

    @field_validator("reference_images")
    @classmethod
    def _limit_reference_images(cls, value: List[ReferenceImage]) -> List[ReferenceImage]:
        if len(value) > MAX_CHAR_REF_IMAGES:
            raise ValueError(f"A character can have at most {MAX_CHAR_REF_IMAGES} reference images")
        return value

    @property
    def has_reference_images(self) -> bool:
        return len(self.reference_images) > 0

    @property
    def has_description(self) -> bool:
        return bool(self.text_description and self.text_description.strip())


# ---------- Panels ----------

class PanelRecord(BaseModel):
    """One panel as written by the text model. Extra keys are ignored."""
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    scene_description: str = Field(..., alias="sceneDescription", description="Visual brief for the artist.")
    dialogue_or_caption: Optional[str] = Field(..., alias="dialogueOrCaption", description="Panel text; null or blank means none.")

    @field_validator("scene_description")
    @classmethod
    def _scene_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("sceneDescription must not be blank")
        return value


class PanelContent(StrictModel):
    """Scene brief and text for one panel, as produced by panel extraction."""
    model_config = ConfigDict(extra="forbid", frozen=True)

    scene_description: str = Field(..., description="Visual brief for the artist: actions, expressions, setting.")
    dialogue_or_caption: str = Field(EMPTY_CAPTION, description="Speech, thoughts, sound effects or narration. A single space means no text overlay.")

    @property
    def has_caption(self) -> bool:
        return self.dialogue_or_caption.strip() != ""


class GeneratedPanel(PanelContent):
    """A panel of the comic, filled in by the image stage."""
    model_config = ConfigDict(extra="forbid", frozen=False)

    id: str = Field(..., description="Order-stable identifier of the panel.")
    image_url: Optional[str] = Field(None, description="Data URL of the generated image.")
    image_path: Optional[str] = Field(None, description="Local file path when images are saved to disk.")
    image_error: Optional[str] = Field(None, description="Error message of the last failed image generation.")
    is_generating: bool = Field(False, description="True while this panel's image call is in flight.")

    @classmethod
    def from_content(cls, content: PanelContent, panel_id: str) -> "GeneratedPanel":
        return cls(id=panel_id, **content.model_dump())

    @property
    def is_pending(self) -> bool:
        return self.image_url is None and self.image_error is None


# ---------- Run Configuration ----------

class RunConfiguration(StrictModel):
    """Options of one comic generation run. Immutable for the run's duration."""
    model_config = ConfigDict(extra="forbid", frozen=True)

    story_script: str = Field(..., description="Free-text story to turn into panels.")
    num_pages: int = Field(..., ge=1, le=MAX_PAGES, description="Number of panels requested.")
    text_model: str = Field(..., description="Model id used to write panel content.")
    image_model: str = Field(..., description="Model id used to draw panels.")
    character_analysis_model: Optional[str] = Field(None, description="Model id used to describe characters from their reference images.")
    image_style: str = Field(..., description="Art style (e.g., 'Photorealistic', 'Anime').")
    comic_era: str = Field(..., description="Comic era (e.g., 'Golden Age (1930s-50s)').")
    aspect_ratio: str = Field("16:9", description="Panel aspect ratio key.")
    seed: int = Field(42, description="Seed passed to image providers that support it.")
    include_captions: bool = Field(True, description="Print captions under panels on export.")
    overlay_text: bool = Field(False, description="Ask Pollinations image models to render the caption on the image.")

    @field_validator("story_script")
    @classmethod
    def _story_length(cls, value: str) -> str:
        length = len(value.strip())
        if length < MIN_STORY_LENGTH:
            raise ValueError(f"Story script must be at least {MIN_STORY_LENGTH} characters")
        if length > MAX_STORY_LENGTH:
            raise ValueError(f"Story script must be at most {MAX_STORY_LENGTH} characters")
        return value

    @field_validator("aspect_ratio")
    @classmethod
    def _known_aspect_ratio(cls, value: str) -> str:
        if value not in ASPECT_RATIOS:
            raise ValueError(f"Unknown aspect ratio '{value}'. Choose one of: {', '.join(ASPECT_RATIOS)}")
        return value

    @field_validator("character_analysis_model")
    @classmethod
    def _blank_model_is_none(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not value.strip():
            return None
        return value

    @property
    def title(self) -> str:
        title = re.sub(r"\s+", "_", self.story_script[:30])
        return title or "My_AI_Comic"


# ---------- Run State ----------

class RunStage(str, Enum):
    IDLE = "idle"
    ANALYZING_CHARACTERS = "analyzing_characters"
    GENERATING_PANEL_CONTENT = "generating_panel_content"
    GENERATING_IMAGES = "generating_images"
    COMPLETE = "complete"
    FAILED = "failed"


class RunContext(StrictModel):
    """Everything one run owns. Each submission gets a fresh instance."""
    run_id: str = Field(default_factory=lambda: uuid4().hex[:12], description="Unique identifier of the run.")
    config: RunConfiguration
    characters: List[Character] = Field(default_factory=list, description="The run's own copy of the characters.")
    panels: List[GeneratedPanel] = Field(default_factory=list, description="Panels in story order.")
    stage: RunStage = Field(RunStage.IDLE, description="Current state of the run.")
    progress: str = Field("", description="Human-readable status of the run.")
    error: Optional[str] = Field(None, description="Run-level error message of a fatal stage failure.")
    error_type: Optional[str] = Field(None, description="Class name of the fatal error.")
    character_errors: List[str] = Field(default_factory=list, description="Non-fatal character analysis failures.")
    raw_panel_response: Optional[str] = Field(None, description="Raw text that panel extraction could not parse.")

    @property
    def is_finished(self) -> bool:
        return self.stage in (RunStage.COMPLETE, RunStage.FAILED)

    @property
    def failed_panels(self) -> List[GeneratedPanel]:
        return [p for p in self.panels if p.image_error]

    @property
    def finished_panels(self) -> List[GeneratedPanel]:
        return [p for p in self.panels if p.image_url]
