"""
Comic Generation Pipeline Core Module

This module turns a story script into a comic: panel content from a text
model, per-panel images from an image model, and character consistency
through reference images or analyzed descriptions.
"""

from .artifact import (
    ApiProvider,
    Character,
    GeneratedPanel,
    ModelOption,
    PanelContent,
    ReferenceImage,
    RunConfiguration,
    RunContext,
    RunStage,
    StrictModel
)

from .catalog import (
    ModelCatalog,
    load_model_catalog
)

from .config import (
    Credentials,
    load_credentials
)

from .errors import (
    CharacterAnalysisFailure,
    ComicGenerationError,
    ImageGenerationFailure,
    IncompleteComicError,
    MalformedStructuredOutput,
    MissingCredentials,
    ProviderRequestError,
    UnknownProviderDispatch,
    UnsupportedCapability
)

from .panel_extractor import extract_panels

from .character_resolver import (
    build_image_prompt,
    resolve_character_hints
)

from .pipeline import (
    ComicSession,
    execute_run,
    new_run,
    run_generation_pipeline
)

from .utils import (
    create_panels_collage,
    ensure_exportable,
    export_comic_pdf
)

__all__ = [
    # Core models
    "ApiProvider",
    "Character",
    "GeneratedPanel",
    "ModelOption",
    "PanelContent",
    "ReferenceImage",
    "RunConfiguration",
    "RunContext",
    "RunStage",
    "StrictModel",

    # Catalog & config
    "ModelCatalog",
    "load_model_catalog",
    "Credentials",
    "load_credentials",

    # Errors
    "CharacterAnalysisFailure",
    "ComicGenerationError",
    "ImageGenerationFailure",
    "IncompleteComicError",
    "MalformedStructuredOutput",
    "MissingCredentials",
    "ProviderRequestError",
    "UnknownProviderDispatch",
    "UnsupportedCapability",

    # Pipeline
    "ComicSession",
    "execute_run",
    "new_run",
    "run_generation_pipeline",
    "extract_panels",
    "build_image_prompt",
    "resolve_character_hints",

    # Export
    "create_panels_collage",
    "ensure_exportable",
    "export_comic_pdf"
]
