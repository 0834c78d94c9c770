"""
Comic Generation Pipeline

Orchestrates one comic run:

    IDLE -> [ANALYZING_CHARACTERS] -> GENERATING_PANEL_CONTENT -> GENERATING_IMAGES -> COMPLETE

FAILED is reachable from IDLE (missing credentials), ANALYZING_CHARACTERS and
GENERATING_PANEL_CONTENT, never from the image stage. Provider calls are
awaited strictly one at a time. Each run owns its RunContext, so a
superseded run can never write into a newer run's state.
"""

from __future__ import annotations

from typing import Callable, List, Optional

from . import providers
from .artifact import (
    ApiProvider,
    Character,
    GeneratedPanel,
    ModelOption,
    PanelContent,
    RunConfiguration,
    RunContext,
    RunStage,
)
from .catalog import ModelCatalog
from .character_resolver import build_image_prompt
from .config import Credentials, load_credentials
from .errors import (
    CharacterAnalysisFailure,
    MalformedStructuredOutput,
    MissingCredentials,
    UnknownProviderDispatch,
    UnsupportedCapability,
)
from .panel_extractor import extract_panels
from .prompts import build_panel_script_prompt
from .utils import export_comic_pdf, image_to_data_url, save_image_to_data, save_run_checkpoint

ProgressCallback = Callable[[RunContext], None]


# ---------- Run State Helpers ----------

def _set_progress(run: RunContext, message: str, on_progress: Optional[ProgressCallback]) -> None:
    run.progress = message
    print(f"  {message}")
    if on_progress:
        on_progress(run)


def _enter_stage(run: RunContext, stage: RunStage, message: str, on_progress: Optional[ProgressCallback]) -> None:
    run.stage = stage
    _set_progress(run, message, on_progress)


def _fail(run: RunContext, error: Exception, message: str, on_progress: Optional[ProgressCallback]) -> RunContext:
    run.stage = RunStage.FAILED
    run.error = message
    run.error_type = type(error).__name__
    print(f"❌ {message}")
    _set_progress(run, "Comic generation failed.", on_progress)
    return run


def _find_or_none(find: Callable[[str], ModelOption], model_id: str) -> Optional[ModelOption]:
    try:
        return find(model_id)
    except UnknownProviderDispatch:
        return None


def new_run(config: RunConfiguration, characters: List[Character]) -> RunContext:
    """Create a fresh run that owns its own copy of the characters."""
    return RunContext(config=config, characters=[c.model_copy(deep=True) for c in characters])


# ---------- Pre-flight ----------

def check_credentials(config: RunConfiguration, characters: List[Character], catalog: ModelCatalog, credentials: Credentials) -> None:
    """Fail before any call if a selected model's provider has no API key.

    Models that cannot be resolved are skipped here; the stage that uses
    them reports UnknownProviderDispatch.

    Raises:
        MissingCredentials: For the first selected model without a key
    """
    selected = [
        (catalog.find_text_model, config.text_model),
        (catalog.find_image_model, config.image_model),
    ]
    if config.character_analysis_model and any(c.has_reference_images for c in characters):
        selected.append((catalog.find_analysis_model, config.character_analysis_model))

    for find, model_id in selected:
        model = _find_or_none(find, model_id)
        if model and not credentials.has_key_for(model.provider):
            raise MissingCredentials(model.provider.value, model.id)


def needs_character_analysis(config: RunConfiguration, characters: List[Character], image_model: Optional[ModelOption]) -> bool:
    """Analysis runs only when references exist, the image model cannot take them, and an analyzer is set."""
    has_references = any(c.has_reference_images for c in characters)
    image_model_takes_images = image_model is not None and image_model.is_multimodal_image_capable
    return has_references and not image_model_takes_images and bool(config.character_analysis_model)


# ---------- Stages ----------

async def analyze_characters(
    run: RunContext,
    catalog: ModelCatalog,
    credentials: Credentials,
    on_progress: Optional[ProgressCallback] = None,
) -> RunContext:
    """Derive a text description for every character with reference images.

    A failure for one character is recorded in run.character_errors and
    leaves that character without a description. An unusable analysis model
    is raised to the caller.
    """
    model = catalog.find_analysis_model(run.config.character_analysis_model)
    if not providers.supports_character_analysis(model):
        raise UnsupportedCapability(model.id, "character analysis")
    api_key = credentials.key_for(model.provider)

    to_analyze = [c for c in run.characters if c.has_reference_images]
    print(f"🔍 Analyzing {len(to_analyze)} characters with {model.id}")

    described = 0
    for char in to_analyze:
        _set_progress(run, f"Analyzing character: {char.name}...", on_progress)
        try:
            description = await providers.analyze_character(model, char.name, char.reference_images, api_key=api_key)
        except (UnsupportedCapability, MissingCredentials, UnknownProviderDispatch):
            raise
        except Exception as e:
            failure = e if isinstance(e, CharacterAnalysisFailure) else CharacterAnalysisFailure(char.name, str(e))
            run.character_errors.append(str(failure))
            print(f"  ❌ {failure}")
            continue

        char.text_description = description
        described += 1
        print(f"  ✅ {char.name}: {description[:80]}{'...' if len(description) > 80 else ''}")

    print(f"  📊 Characters described: {described}/{len(to_analyze)}")
    return run


async def generate_panel_contents(
    run: RunContext,
    catalog: ModelCatalog,
    credentials: Credentials,
) -> List[PanelContent]:
    """Ask the text model for the panel script and extract exactly num_pages panels."""
    config = run.config
    model = catalog.find_text_model(config.text_model)
    system_instruction, user_prompt = build_panel_script_prompt(config, run.characters)
    if model.provider == ApiProvider.POLLINATIONS:
        user_prompt += "\n\nReturn ONLY THE JSON array."

    print(f"📝 Writing {config.num_pages} panels with {model.id}")
    raw_text = await providers.generate_text(
        model,
        user_prompt,
        system_instruction=system_instruction,
        api_key=credentials.key_for(model.provider),
    )
    panels = extract_panels(raw_text, config.num_pages)
    print(f"  ✅ {len(panels)} panels written")
    return panels


async def generate_panel_image(
    run: RunContext,
    index: int,
    image_model: Optional[ModelOption],
    api_key: Optional[str],
    model_error: Optional[Exception] = None,
    save_images: bool = False,
    on_progress: Optional[ProgressCallback] = None,
) -> GeneratedPanel:
    """Generate the image of one panel. Failures are stored on the panel, never raised."""
    panel = run.panels[index]
    panel.is_generating = True
    panel.image_error = None
    _set_progress(run, f"Generating image for panel {index + 1} of {len(run.panels)}...", on_progress)

    try:
        if image_model is None:
            raise model_error or UnknownProviderDispatch(run.config.image_model)

        request = build_image_prompt(panel, run.characters, run.config, image_model)
        images = await providers.generate_image(
            image_model,
            request.prompt,
            count=1,
            seed=run.config.seed,
            aspect_ratio=run.config.aspect_ratio,
            reference_images=request.reference_images,
            api_key=api_key,
        )
        image_bytes = images[0]
        panel.image_url = image_to_data_url(image_bytes)
        print(f"    ✅ Panel {index + 1} image ready")
        if save_images:
            try:
                panel.image_path = save_image_to_data(image_bytes, run.config.title, "panel", f"panel_{index + 1}")
            except OSError as e:
                # The image stays usable from image_url
                print(f"    ⚠️ Could not save panel {index + 1} image: {e}")
    except Exception as e:
        panel.image_error = str(e)
        print(f"    ❌ Panel {index + 1} image failed: {str(e)[:100]}")
    finally:
        panel.is_generating = False

    return panel


async def generate_panel_images(
    run: RunContext,
    catalog: ModelCatalog,
    credentials: Credentials,
    save_images: bool = False,
    on_progress: Optional[ProgressCallback] = None,
) -> RunContext:
    """Generate panel images in order, one call at a time."""
    model_error = None
    try:
        image_model = catalog.find_image_model(run.config.image_model)
    except UnknownProviderDispatch as e:
        image_model, model_error = None, e

    api_key = credentials.key_for(image_model.provider) if image_model else None
    print(f"🎨 Generating {len(run.panels)} panel images with {run.config.image_model}")

    for index in range(len(run.panels)):
        await generate_panel_image(run, index, image_model, api_key, model_error, save_images, on_progress)

    failed = len(run.failed_panels)
    print(f"\n  📊 Panel images: {len(run.panels) - failed} success, {failed} failed")
    return run


# ---------- Orchestrator ----------

async def execute_run(
    run: RunContext,
    catalog: ModelCatalog,
    credentials: Credentials,
    on_progress: Optional[ProgressCallback] = None,
    save_images: bool = False,
    save_checkpoints: bool = False,
) -> RunContext:
    """Drive a run from IDLE to COMPLETE or FAILED.

    Args:
        run: A fresh run from new_run()
        catalog: Model catalog used to resolve model ids
        credentials: Provider API keys
        on_progress: Called with the run at every progress update
        save_images: Also write panel images under the data folder
        save_checkpoints: Write a JSON checkpoint after each stage

    Returns:
        The same run, finished
    """
    config = run.config
    print(f"🎬 Starting comic generation: {config.title} ({config.num_pages} panels)")

    try:
        check_credentials(config, run.characters, catalog, credentials)
    except MissingCredentials as e:
        return _fail(run, e, str(e), on_progress)

    image_model = _find_or_none(catalog.find_image_model, config.image_model)
    if needs_character_analysis(config, run.characters, image_model):
        _enter_stage(run, RunStage.ANALYZING_CHARACTERS, "Analyzing character reference images...", on_progress)
        try:
            await analyze_characters(run, catalog, credentials, on_progress)
        except (UnknownProviderDispatch, UnsupportedCapability, MissingCredentials) as e:
            return _fail(run, e, f"Failed to analyze characters: {e}.", on_progress)
        if save_checkpoints:
            save_run_checkpoint(run, RunStage.ANALYZING_CHARACTERS)

    _enter_stage(run, RunStage.GENERATING_PANEL_CONTENT, "Generating panel descriptions and dialogues...", on_progress)
    try:
        contents = await generate_panel_contents(run, catalog, credentials)
    except MalformedStructuredOutput as e:
        run.raw_panel_response = e.raw_response
        return _fail(run, e, f"Failed to generate panel content: {e}", on_progress)
    except Exception as e:
        return _fail(run, e, f"Failed to generate panel content: {e}", on_progress)

    run.panels = [GeneratedPanel.from_content(content, f"{run.run_id}-{i}") for i, content in enumerate(contents)]
    _set_progress(run, "Panel content generated. Starting image generation...", on_progress)
    if save_checkpoints:
        save_run_checkpoint(run, RunStage.GENERATING_PANEL_CONTENT)

    _enter_stage(run, RunStage.GENERATING_IMAGES, f"Generating images for {len(run.panels)} panels...", on_progress)
    await generate_panel_images(run, catalog, credentials, save_images, on_progress)

    _enter_stage(run, RunStage.COMPLETE, "Comic generation complete!", on_progress)
    if save_checkpoints:
        save_run_checkpoint(run, RunStage.COMPLETE)
    return run


async def run_generation_pipeline(
    config: RunConfiguration,
    characters: Optional[List[Character]] = None,
    catalog: Optional[ModelCatalog] = None,
    credentials: Optional[Credentials] = None,
    on_progress: Optional[ProgressCallback] = None,
    save_images: bool = False,
    save_checkpoints: bool = False,
) -> RunContext:
    """Run the complete comic generation pipeline for one submission.

    Defaults to the built-in model catalog and credentials from the environment.
    """
    run = new_run(config, characters or [])
    return await execute_run(
        run,
        catalog if catalog is not None else ModelCatalog(),
        credentials if credentials is not None else load_credentials(),
        on_progress=on_progress,
        save_images=save_images,
        save_checkpoints=save_checkpoints,
    )


# ---------- Session ----------

class ComicSession:
    """Observed state across successive submissions.

    Every submission replaces the current run. Updates from a run that has
    since been superseded are dropped, so a late-finishing old run never
    overwrites what the session shows.
    """

    def __init__(
        self,
        catalog: ModelCatalog,
        credentials: Credentials,
        on_update: Optional[ProgressCallback] = None,
        save_images: bool = False,
        save_checkpoints: bool = False,
    ):
        self.catalog = catalog
        self.credentials = credentials
        self.on_update = on_update
        self.save_images = save_images
        self.save_checkpoints = save_checkpoints
        self.current: Optional[RunContext] = None

    @property
    def panels(self) -> List[GeneratedPanel]:
        return self.current.panels if self.current else []

    def is_current(self, run: RunContext) -> bool:
        return self.current is not None and self.current.run_id == run.run_id

    def _forward(self, run: RunContext) -> None:
        if self.is_current(run) and self.on_update:
            self.on_update(run)

    async def submit(self, config: RunConfiguration, characters: Optional[List[Character]] = None) -> RunContext:
        """Start a new run, making it the session's current run, and wait for it to finish."""
        run = new_run(config, characters or [])
        self.current = run
        await execute_run(
            run,
            self.catalog,
            self.credentials,
            on_progress=self._forward,
            save_images=self.save_images,
            save_checkpoints=self.save_checkpoints,
        )
        if not self.is_current(run):
            print(f"⏭️  Discarding results of superseded run {run.run_id}")
        return run

    def export_pdf(self, output_path: Optional[str] = None, allow_incomplete: bool = False) -> str:
        if self.current is None:
            raise ValueError("No comic has been generated yet")
        return export_comic_pdf(self.current, output_path, allow_incomplete=allow_incomplete)
