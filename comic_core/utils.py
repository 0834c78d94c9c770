"""
Utilities for the Comic Generation Pipeline

This module provides:
- Image byte / data URL helpers
- Saving generated images with systematic naming
- Saving run checkpoints after each stage
- The export hand-off guard, PDF export and a preview collage
"""

import base64
import binascii
import io
import json
import os
import re
from datetime import datetime
from typing import List, Optional

from PIL import Image, ImageDraw, ImageFont

from .artifact import GeneratedPanel, RunContext, RunStage
from .config import get_data_dir
from .errors import IncompleteComicError


# ---------- Image Helpers ----------

def guess_image_mime(data: bytes) -> str:
    """Guess an image MIME type from its leading bytes (PNG when unknown)."""
    if data.startswith(b"\xff\xd8"):
        return "image/jpeg"
    if data.startswith(b"RIFF") and data[8:12] == b"WEBP":
        return "image/webp"
    if data.startswith(b"GIF8"):
        return "image/gif"
    return "image/png"


def image_to_data_url(data: bytes) -> str:
    return f"data:{guess_image_mime(data)};base64,{base64.b64encode(data).decode('ascii')}"


def decode_data_url(image_data_url: str) -> bytes:
    """Decode base64 image data from data URL.

    Args:
        image_data_url: Data URL string (e.g., "data:image/png;base64,...")

    Returns:
        Decoded image bytes

    Raises:
        ValueError: If decoding fails
    """
    try:
        base64_data = image_data_url.split(",", 1)[1]
        return base64.b64decode(base64_data)
    except (IndexError, binascii.Error) as e:
        raise ValueError(f"Failed to decode base64 image data: {str(e)}")


def sanitize_name(name: str) -> str:
    # Replace spaces and special characters with underscores
    sanitized = re.sub(r"[^\w\-_]", "_", name)
    sanitized = re.sub(r"_+", "_", sanitized)
    return sanitized.strip("_").lower()


# ---------- Persistence ----------

def save_image_to_data(image_bytes: bytes, project_name: str, image_type: str, item_name: str) -> str:
    """Save image to data folder with systematic naming convention.

    Args:
        image_bytes: The image data as bytes
        project_name: Name of the project (usually the comic title)
        image_type: Type of image (e.g., 'panel')
        item_name: Name of the item being generated

    Returns:
        Local file path to the saved image
    """
    images_dir = os.path.join(get_data_dir(), sanitize_name(project_name), "images")
    os.makedirs(images_dir, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    extension = guess_image_mime(image_bytes).split("/")[1]
    filename = f"{sanitize_name(image_type)}_{sanitize_name(item_name)}_{timestamp}.{extension}"
    filepath = os.path.join(images_dir, filename)

    with open(filepath, "wb") as f:
        f.write(image_bytes)

    return filepath


def save_run_checkpoint(run: RunContext, stage: RunStage) -> str:
    """Save the run state after a stage (image data URLs and image bytes are left out).

    Args:
        run: The run context
        stage: Stage that just finished

    Returns:
        Path to the checkpoint file
    """
    checkpoint_dir = os.path.join(get_data_dir(), sanitize_name(run.config.title))
    os.makedirs(checkpoint_dir, exist_ok=True)

    checkpoint_path = os.path.join(checkpoint_dir, f"run_{run.run_id}_after_{stage.value}.json")
    data = run.model_dump(mode="json", exclude={"panels": {"__all__": {"image_url"}}})
    with open(checkpoint_path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2)

    print(f"Checkpoint saved: {checkpoint_path}")
    return checkpoint_path


# ---------- Export ----------

def ensure_exportable(panels: List[GeneratedPanel], allow_incomplete: bool = False) -> None:
    """Refuse to hand a panel set to export unless it is finished.

    Panels still generating (or never processed) always block export. Panels
    with an image error block it unless the caller explicitly allows an
    incomplete comic.

    Raises:
        IncompleteComicError: With the affected panel numbers
    """
    if not panels:
        raise IncompleteComicError("There are no panels to export.")

    unfinished = [i + 1 for i, p in enumerate(panels) if p.is_generating or p.is_pending]
    if unfinished:
        raise IncompleteComicError(f"Please wait for all panels to generate. Still in progress: panels {unfinished}.")

    failed = [i + 1 for i, p in enumerate(panels) if p.image_error and not p.image_url]
    if failed and not allow_incomplete:
        raise IncompleteComicError(f"Panels {failed} failed to generate. Regenerate them or export with allow_incomplete=True.")


def _load_fonts(title_size: int = 36, text_size: int = 24):
    for path in ("/System/Library/Fonts/Helvetica.ttc", "arial.ttf", "DejaVuSans.ttf"):
        try:
            return ImageFont.truetype(path, title_size), ImageFont.truetype(path, text_size)
        except OSError:
            continue
    default = ImageFont.load_default()
    return default, default


def wrap_text(draw: ImageDraw.ImageDraw, text: str, font, max_width: int) -> List[str]:
    """Word wrap text so each line fits in max_width pixels."""
    lines = []
    current_line: List[str] = []

    for word in text.split():
        test_line = " ".join(current_line + [word])
        bbox = draw.textbbox((0, 0), test_line, font=font)
        if bbox[2] - bbox[0] > max_width:
            if current_line:
                lines.append(" ".join(current_line))
                current_line = [word]
            else:
                lines.append(word)
                current_line = []
        else:
            current_line.append(word)

    if current_line:
        lines.append(" ".join(current_line))
    return lines


def _panel_image(panel: GeneratedPanel, size=(1024, 576)) -> Image.Image:
    if panel.image_url:
        return Image.open(io.BytesIO(decode_data_url(panel.image_url))).convert("RGB")

    placeholder = Image.new("RGB", size, color="#2b2b2b")
    draw = ImageDraw.Draw(placeholder)
    _, text_font = _load_fonts()
    message = f"Image unavailable: {panel.image_error or 'not generated'}"
    y = 20
    for line in wrap_text(draw, message, text_font, size[0] - 40):
        draw.text((20, y), line, fill="#ff8080", font=text_font)
        y += 30
    return placeholder


def _panel_page(panel: GeneratedPanel, panel_number: int, include_caption: bool) -> Image.Image:
    img = _panel_image(panel)
    title_font, text_font = _load_fonts()
    padding = 30
    line_height = 32

    scratch = ImageDraw.Draw(img)
    lines = wrap_text(scratch, panel.dialogue_or_caption.strip(), text_font, img.width - 2 * padding) if include_caption and panel.has_caption else []
    caption_height = padding * 2 + 50 + line_height * len(lines)

    page = Image.new("RGB", (img.width, img.height + caption_height), color="white")
    page.paste(img, (0, 0))
    draw = ImageDraw.Draw(page)
    draw.text((padding, img.height + padding), f"Panel {panel_number}", fill="black", font=title_font)

    line_y = img.height + padding + 50
    for line in lines:
        draw.text((padding, line_y), line, fill="#333333", font=text_font)
        line_y += line_height
    return page


def export_comic_pdf(
    run: RunContext,
    output_path: Optional[str] = None,
    allow_incomplete: bool = False,
) -> str:
    """Write the run's panels to a PDF, one panel per page.

    Args:
        run: A finished run
        output_path: Optional PDF path (defaults to data/{title}/{title}.pdf)
        allow_incomplete: Export failed panels as placeholder pages instead of refusing

    Returns:
        Path to the written PDF
    """
    ensure_exportable(run.panels, allow_incomplete=allow_incomplete)

    pages = [
        _panel_page(panel, i + 1, run.config.include_captions)
        for i, panel in enumerate(run.panels)
    ]

    if output_path is None:
        title = sanitize_name(run.config.title)
        output_path = os.path.join(get_data_dir(), title, f"{title}.pdf")
    os.makedirs(os.path.dirname(output_path) or ".", exist_ok=True)

    pages[0].save(output_path, "PDF", save_all=True, append_images=pages[1:], resolution=100.0)
    print(f"📄 Comic saved: {output_path}")
    return output_path


def create_panels_collage(run: RunContext, output_filename: Optional[str] = None) -> str:
    """Create a single-row preview image of all finished panels.

    Raises:
        ValueError: If no panel has an image
    """
    finished = [(i + 1, p) for i, p in enumerate(run.panels) if p.image_url]
    if not finished:
        raise ValueError("No panels with images found in run")

    print(f"📸 Creating collage for {len(finished)} panels...")
    pages = [_panel_page(panel, number, run.config.include_captions) for number, panel in finished]

    gap = 20
    width = sum(p.width for p in pages) + gap * (len(pages) - 1)
    height = max(p.height for p in pages)
    collage = Image.new("RGB", (width, height), color="white")

    x_offset = 0
    for page in pages:
        collage.paste(page, (x_offset, 0))
        x_offset += page.width + gap

    output_dir = os.path.join(get_data_dir(), sanitize_name(run.config.title))
    os.makedirs(output_dir, exist_ok=True)
    if output_filename is None:
        output_filename = f"panels_collage_{datetime.now().strftime('%Y%m%d_%H%M%S')}.png"
    output_path = os.path.join(output_dir, output_filename)
    collage.save(output_path)

    print(f"✅ Collage saved: {output_path}")
    return output_path
