#!/usr/bin/env python3

import argparse
import asyncio
import sys
from typing import List

from dotenv import load_dotenv

from comic_core import (
    Character,
    ComicGenerationError,
    ReferenceImage,
    RunConfiguration,
    RunStage,
    create_panels_collage,
    export_comic_pdf,
    load_credentials,
    load_model_catalog,
    run_generation_pipeline,
)
from comic_core.constants import ASPECT_RATIOS, COMIC_ERAS, DEFAULT_CONFIG_VALUES, IMAGE_STYLES, MAX_CHAR_REF_IMAGES
from comic_core.utils import guess_image_mime

load_dotenv()


def parse_character(value: str) -> Character:
    """Parse NAME or NAME=img1.png,img2.jpg into a Character."""
    name, _, paths = value.partition("=")
    images = []
    for path in [p.strip() for p in paths.split(",") if p.strip()][:MAX_CHAR_REF_IMAGES]:
        with open(path, "rb") as f:
            data = f.read()
        images.append(ReferenceImage(data=data, mime_type=guess_image_mime(data)))
    return Character(name=name, reference_images=images)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Turn a story script into an AI-generated comic.")
    parser.add_argument("story", help="Story text, or @path to read it from a file")
    parser.add_argument("--pages", type=int, default=DEFAULT_CONFIG_VALUES["num_pages"], help="Number of panels")
    parser.add_argument("--text-model", default=DEFAULT_CONFIG_VALUES["text_model"])
    parser.add_argument("--image-model", default=DEFAULT_CONFIG_VALUES["image_model"])
    parser.add_argument("--analysis-model", default=DEFAULT_CONFIG_VALUES["character_analysis_model"],
                        help="Model that describes characters from reference images (empty to disable)")
    parser.add_argument("--style", default=DEFAULT_CONFIG_VALUES["image_style"], choices=IMAGE_STYLES)
    parser.add_argument("--era", default=DEFAULT_CONFIG_VALUES["comic_era"], choices=COMIC_ERAS)
    parser.add_argument("--aspect-ratio", default=DEFAULT_CONFIG_VALUES["aspect_ratio"], choices=list(ASPECT_RATIOS))
    parser.add_argument("--seed", type=int, default=DEFAULT_CONFIG_VALUES["seed"])
    parser.add_argument("--no-captions", action="store_true", help="Leave captions out of the exported comic")
    parser.add_argument("--overlay-text", action="store_true", help="Ask Pollinations image models to draw captions")
    parser.add_argument("--character", action="append", default=[], metavar="NAME=IMG1,IMG2",
                        help="Character with optional reference images (repeatable)")
    parser.add_argument("--output", help="PDF output path")
    parser.add_argument("--allow-incomplete", action="store_true", help="Export even if some panels failed")
    parser.add_argument("--offline-catalog", action="store_true", help="Skip fetching Pollinations models")
    parser.add_argument("--save-images", action="store_true")
    parser.add_argument("--checkpoints", action="store_true")
    parser.add_argument("--list-models", action="store_true", help="Print the model catalog and exit")
    return parser


def print_catalog(catalog) -> None:
    for title, models in (("Text models", catalog.text_models),
                          ("Image models", catalog.image_models),
                          ("Character analysis models", catalog.analysis_models)):
        print(f"\n{title}:")
        for model in models:
            print(f"  {model.id:45} {model.label}")


async def main(argv: List[str] = None) -> int:
    args = build_parser().parse_args(argv)

    catalog = load_model_catalog(fetch_remote=not args.offline_catalog)
    if args.list_models:
        print_catalog(catalog)
        return 0

    story = args.story
    if story.startswith("@"):
        with open(story[1:], "r", encoding="utf-8") as f:
            story = f.read()

    try:
        characters = [parse_character(value) for value in args.character]
        config = RunConfiguration(
            story_script=story,
            num_pages=args.pages,
            text_model=args.text_model,
            image_model=args.image_model,
            character_analysis_model=args.analysis_model or None,
            image_style=args.style,
            comic_era=args.era,
            aspect_ratio=args.aspect_ratio,
            seed=args.seed,
            include_captions=not args.no_captions,
            overlay_text=args.overlay_text,
        )
    except (OSError, ValueError) as e:
        print(f"❌ {e}")
        return 2

    print(f"Starting comic generation for: {config.title}")
    print("=" * 50)

    run = await run_generation_pipeline(
        config,
        characters,
        catalog=catalog,
        credentials=load_credentials(),
        save_images=args.save_images,
        save_checkpoints=args.checkpoints,
    )

    print("=" * 50)
    for warning in run.character_errors:
        print(f"⚠️  {warning}")

    if run.stage == RunStage.FAILED:
        print(f"❌ {run.error}")
        if run.raw_panel_response:
            print(f"Raw model response:\n{run.raw_panel_response}")
        return 1

    print(f"Generated {len(run.finished_panels)}/{len(run.panels)} panel images")
    for panel in run.failed_panels:
        print(f"  ❌ {panel.id}: {panel.image_error}")

    try:
        export_comic_pdf(run, args.output, allow_incomplete=args.allow_incomplete)
        if run.finished_panels:
            create_panels_collage(run)
    except ComicGenerationError as e:
        print(f"❌ {e}")
        return 1

    print("✨ Comic completed!")
    return 0


def cli() -> None:
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    cli()
