"""
Generation guides sent to the text and analysis models.
"""

from typing import List, Tuple

from .artifact import Character, RunConfiguration


# ---------- Panel Script Guide ----------

PANEL_SCRIPT_GUIDE = (
    'You are an expert comic scriptwriter. Your task is to break down the following story into {num_pages} '
    'distinct comic panels. For each panel, provide a "sceneDescription" (visual details for the artist, '
    'including character actions, expressions, and setting) and a "dialogueOrCaption". The "dialogueOrCaption" '
    'MUST contain the speech for characters, thoughts, sound effects, or narrator text for the panel. If there is '
    "no direct speech, provide a brief narrator's caption describing the moment or setting the scene. Do not leave "
    '"dialogueOrCaption" empty unless absolutely no text is suitable for the panel; in such rare cases, use " " '
    "(a single space). {character_part} "
)

PANEL_SCRIPT_FORMAT = (
    'Your response MUST be a valid JSON array of objects, where each object has keys "sceneDescription" and '
    '"dialogueOrCaption". Do NOT include any explanatory text, comments, markdown, or any characters whatsoever '
    "before the opening '[' or after the closing ']' of the JSON array. ONLY THE JSON ARRAY. "
)

PANEL_SCRIPT_EXAMPLE = 'Example: [{"sceneDescription": "A hero stands on a cliff", "dialogueOrCaption": "I must save the city!"}]'


def _describe_characters(characters: List[Character]) -> str:
    details = []
    for char in characters:
        image_info = f" with {len(char.reference_images)} reference image(s)" if char.has_reference_images else ""
        desc_info = " (textual description available)" if char.has_description else ""
        details.append(f"{char.name}{image_info}{desc_info}")
    return ", ".join(details)


def build_panel_script_prompt(config: RunConfiguration, characters: List[Character]) -> Tuple[str, str]:
    """Build the (system_instruction, user_prompt) pair for panel content generation."""
    character_part = ""
    if characters:
        character_part = (
            f"\n\nReferenced Characters: {_describe_characters(characters)}. If these characters are mentioned in a "
            "panel, ensure their descriptions are consistent with any provided image references or generated textual "
            "descriptions. If using a multimodal image model that accepts images, these references might be passed directly."
        )

    system_instruction = (
        PANEL_SCRIPT_GUIDE.format(num_pages=config.num_pages, character_part=character_part)
        + PANEL_SCRIPT_FORMAT
        + PANEL_SCRIPT_EXAMPLE
    )
    user_prompt = f'Story Script: """{config.story_script}"""\n\nGenerate {config.num_pages} panels.'
    return system_instruction, user_prompt


# ---------- Character Analysis Guide ----------

CHARACTER_ANALYSIS_GUIDE = """
Analyze the provided reference image(s) of the character named "{name}".

Write a detailed visual description that an illustrator could follow to draw
{name} consistently across many comic panels. Cover:
- Apparent age, build and height
- Face: shape, skin tone, eye colour, distinctive features
- Hair: colour, length, style
- Clothing, accessories and colour palette
- Any unique marks, props or traits that make {name} recognizable

Describe only what is visible. Respond with the description only, as one paragraph,
without introductions or markdown.
"""


def build_character_analysis_prompt(name: str) -> str:
    return CHARACTER_ANALYSIS_GUIDE.format(name=name).strip()
