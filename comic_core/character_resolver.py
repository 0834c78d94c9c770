"""
Character Consistency Resolver

Decides, per panel, how named characters are kept consistent in the image
request: reference images plus a short clause for multimodal image models,
or an insistent textual description for text-only ones. Also layers the
era, style and caption-overlay clauses onto the image prompt.
"""

from __future__ import annotations

import re
from typing import List, NamedTuple, Optional

from .artifact import ApiProvider, Character, ModelOption, PanelContent, ReferenceImage, RunConfiguration

# Providers that respond well to a terse style keyword
CONCISE_STYLE_PROVIDERS = frozenset({ApiProvider.POLLINATIONS})
# Prompt-to-image providers that are asked to draw the caption themselves
TEXT_OVERLAY_PROVIDERS = frozenset({ApiProvider.POLLINATIONS})

PHOTOREALISTIC_STYLE = "Photorealistic"
PHOTOREALISTIC_DETAIL = "ultra-realistic details, photographic quality, sharp focus, lifelike textures, natural lighting"


class CharacterHints(NamedTuple):
    clauses: List[str]
    # None (never an empty list) when no reference image was collected
    reference_images: Optional[List[ReferenceImage]]


class ImagePrompt(NamedTuple):
    prompt: str
    reference_images: Optional[List[ReferenceImage]]


# ---------- Matching ----------

def _name_pattern(name: str) -> re.Pattern:
    # Lookarounds instead of \b so names ending in punctuation still match
    return re.compile(rf"(?<!\w){re.escape(name.strip())}(?!\w)", re.IGNORECASE)


def character_in_panel(name: str, panel: PanelContent) -> bool:
    """True if `name` appears as a whole word, any case, in the scene or caption."""
    if not name or not name.strip():
        return False
    pattern = _name_pattern(name)
    return bool(pattern.search(panel.scene_description) or pattern.search(panel.dialogue_or_caption))


def characters_in_panel(panel: PanelContent, characters: List[Character]) -> List[Character]:
    return [c for c in characters if character_in_panel(c.name, panel)]


# ---------- Character Clauses ----------

def resolve_character_hints(panel: PanelContent, characters: List[Character], image_model: ModelOption) -> CharacterHints:
    """Build the consistency clauses and reference images for one panel."""
    clauses: List[str] = []
    matched = characters_in_panel(panel, characters)

    if image_model.is_multimodal_image_capable:
        collected: List[ReferenceImage] = []
        for char in matched:
            if char.has_reference_images:
                clauses.append(f"Featuring {char.name} (refer to provided images for appearance).")
                collected.extend(char.reference_images)
            else:
                clauses.append(f"Featuring {char.name}.")
        return CharacterHints(clauses, collected or None)

    for char in matched:
        if char.has_description:
            clauses.append(
                f'Important Character: {char.name}. Description: "{char.text_description.strip()}". '
                f"It is CRUCIAL that {char.name} in this image strictly matches this description."
            )
        else:
            clauses.append(f"Featuring {char.name}.")
    return CharacterHints(clauses, None)


# ---------- Style Clauses ----------

def style_clause(image_style: str, image_model: ModelOption) -> str:
    if image_style == PHOTOREALISTIC_STYLE and image_model.provider not in CONCISE_STYLE_PROVIDERS:
        return f"Style: {PHOTOREALISTIC_STYLE} ({PHOTOREALISTIC_DETAIL})."
    return f"Style: {image_style}."


def build_style_clauses(config: RunConfiguration, image_model: ModelOption, panel: PanelContent) -> List[str]:
    clauses = [f"Comic Era: {config.comic_era}.", style_clause(config.image_style, image_model)]

    if config.overlay_text and image_model.provider in TEXT_OVERLAY_PROVIDERS and panel.has_caption:
        clauses.append(f'The following text should appear on the image: "{panel.dialogue_or_caption.strip()}".')

    return clauses


def build_image_prompt(
    panel: PanelContent,
    characters: List[Character],
    config: RunConfiguration,
    image_model: ModelOption,
) -> ImagePrompt:
    """Compose the full image prompt for a panel and the reference images to send with it."""
    hints = resolve_character_hints(panel, characters, image_model)
    parts = [panel.scene_description.strip()]
    parts.extend(build_style_clauses(config, image_model, panel))
    parts.extend(hints.clauses)
    return ImagePrompt(" ".join(parts), hints.reference_images)
