import asyncio
import json
import os
from unittest.mock import AsyncMock, patch

import pytest

from comic_core.artifact import Character, RunStage
from comic_core.config import Credentials
from comic_core.constants import GEMINI_FLASH_CHAT_IMAGE_GEN_MODEL_ID
from comic_core.errors import CharacterAnalysisFailure, ImageGenerationFailure, MissingCredentials, ProviderRequestError
from comic_core.pipeline import (
    ComicSession,
    check_credentials,
    execute_run,
    needs_character_analysis,
    new_run,
    run_generation_pipeline,
)


def _patch_providers(text=None, image=None, analysis=None):
    return (
        patch("comic_core.providers.generate_text", new=text or AsyncMock()),
        patch("comic_core.providers.generate_image", new=image or AsyncMock()),
        patch("comic_core.providers.analyze_character", new=analysis or AsyncMock()),
    )


async def _run(config, characters, catalog, credentials, text=None, image=None, analysis=None, **kwargs):
    text = text or AsyncMock()
    image = image or AsyncMock()
    analysis = analysis or AsyncMock()
    p_text, p_image, p_analysis = _patch_providers(text, image, analysis)
    with p_text, p_image, p_analysis:
        run = await run_generation_pipeline(config, characters, catalog, credentials, **kwargs)
    return run, text, image, analysis


# ---------- Happy Path ----------

@pytest.mark.asyncio
async def test_complete_run(make_config, catalog, credentials, panel_script, png_bytes):
    progress = []
    run, text, image, analysis = await _run(
        make_config(), [], catalog, credentials,
        text=AsyncMock(return_value=panel_script(3)),
        image=AsyncMock(return_value=[png_bytes]),
        on_progress=lambda r: progress.append(r.progress),
    )

    assert run.stage == RunStage.COMPLETE
    assert run.error is None
    assert len(run.panels) == 3
    assert all(p.image_url.startswith("data:image/png;base64,") for p in run.panels)
    assert not any(p.is_generating or p.image_error for p in run.panels)
    assert image.await_count == 3
    analysis.assert_not_awaited()

    assert progress[0] == "Generating panel descriptions and dialogues..."
    assert "Generating image for panel 2 of 3..." in progress
    assert progress[-1] == "Comic generation complete!"


@pytest.mark.asyncio
async def test_text_model_receives_story_and_panel_count(make_config, catalog, credentials, panel_script, png_bytes):
    run, text, _, _ = await _run(
        make_config(num_pages=2), [], catalog, credentials,
        text=AsyncMock(return_value=panel_script(2)),
        image=AsyncMock(return_value=[png_bytes]),
    )
    prompt = text.await_args.args[1]
    assert "Max the detective chases a thief" in prompt
    assert prompt.endswith("Generate 2 panels.")
    assert text.await_args.kwargs["api_key"] == "test-gemini-key"


@pytest.mark.asyncio
async def test_panel_image_request(make_config, catalog, credentials, panel_script, png_bytes):
    config = make_config(num_pages=1, seed=1234, aspect_ratio="4:3")
    _, _, image, _ = await _run(
        config, [], catalog, credentials,
        text=AsyncMock(return_value=panel_script(1)),
        image=AsyncMock(return_value=[png_bytes]),
    )
    kwargs = image.await_args.kwargs
    assert kwargs["seed"] == 1234
    assert kwargs["aspect_ratio"] == "4:3"
    assert kwargs["count"] == 1
    assert kwargs["reference_images"] is None
    assert image.await_args.args[1].startswith("Max runs across rooftop 1")


# ---------- Image Stage ----------

@pytest.mark.asyncio
async def test_one_failed_image_does_not_fail_the_run(make_config, catalog, credentials, panel_script, png_bytes):
    image = AsyncMock(side_effect=[[png_bytes], ImageGenerationFailure("No image data"), [png_bytes]])
    run, _, image, _ = await _run(
        make_config(), [], catalog, credentials,
        text=AsyncMock(return_value=panel_script(3)),
        image=image,
    )

    assert run.stage == RunStage.COMPLETE
    assert image.await_count == 3
    assert run.panels[1].image_error == "No image data"
    assert run.panels[1].image_url is None
    assert run.panels[0].image_url and run.panels[2].image_url
    assert run.failed_panels == [run.panels[1]]
    assert not any(p.is_generating for p in run.panels)


@pytest.mark.asyncio
async def test_generating_flag_is_cleared_after_a_failed_image(make_config, catalog, credentials, panel_script, png_bytes):
    run = new_run(make_config(num_pages=2), [])
    flags_during_call = []

    async def fake_image(model, prompt, **kwargs):
        flags_during_call.append([p.is_generating for p in run.panels])
        if len(flags_during_call) == 1:
            raise ImageGenerationFailure("No image data")
        return [png_bytes]

    p_text, p_image, p_analysis = _patch_providers(
        text=AsyncMock(return_value=panel_script(2)),
        image=AsyncMock(side_effect=fake_image),
    )
    with p_text, p_image, p_analysis:
        await execute_run(run, catalog, credentials)

    assert flags_during_call == [[True, False], [False, True]]
    assert run.panels[0].image_error == "No image data"
    assert not run.panels[0].is_generating
    assert not any(p.is_generating for p in run.panels)


@pytest.mark.asyncio
async def test_failed_save_keeps_the_generated_image(make_config, catalog, credentials, panel_script, png_bytes):
    with patch("comic_core.pipeline.save_image_to_data", side_effect=OSError("No space left on device")):
        run, _, _, _ = await _run(
            make_config(num_pages=2), [], catalog, credentials,
            text=AsyncMock(return_value=panel_script(2)),
            image=AsyncMock(return_value=[png_bytes]),
            save_images=True,
        )

    assert run.stage == RunStage.COMPLETE
    assert all(p.image_url and p.image_url.startswith("data:image/png;base64,") for p in run.panels)
    assert all(p.image_error is None and p.image_path is None for p in run.panels)
    assert run.failed_panels == []


@pytest.mark.asyncio
async def test_unknown_image_model_marks_every_panel(make_config, catalog, credentials, panel_script):
    run, _, image, _ = await _run(
        make_config(image_model="no-such-model"), [], catalog, credentials,
        text=AsyncMock(return_value=panel_script(3)),
    )

    assert run.stage == RunStage.COMPLETE
    image.assert_not_awaited()
    assert all("Unknown model provider for no-such-model" in p.image_error for p in run.panels)


@pytest.mark.asyncio
async def test_only_one_panel_generates_at_a_time(make_config, catalog, credentials, panel_script, png_bytes):
    run = new_run(make_config(), [])
    observed = []

    async def fake_image(model, prompt, **kwargs):
        observed.append([p.is_generating for p in run.panels])
        return [png_bytes]

    p_text, p_image, p_analysis = _patch_providers(
        text=AsyncMock(return_value=panel_script(3)),
        image=AsyncMock(side_effect=fake_image),
    )
    with p_text, p_image, p_analysis:
        await execute_run(run, catalog, credentials)

    assert observed == [[True, False, False], [False, True, False], [False, False, True]]
    assert not any(p.is_generating for p in run.panels)


# ---------- Panel Content Stage ----------

@pytest.mark.asyncio
async def test_malformed_panel_content_fails_the_run(make_config, catalog, credentials):
    raw = "Once upon a time there were no panels."
    run, _, image, _ = await _run(make_config(), [], catalog, credentials, text=AsyncMock(return_value=raw))

    assert run.stage == RunStage.FAILED
    assert run.error.startswith("Failed to generate panel content:")
    assert run.error_type == "MalformedStructuredOutput"
    assert run.raw_panel_response == raw
    assert run.panels == []
    image.assert_not_awaited()


@pytest.mark.asyncio
async def test_provider_error_fails_the_run(make_config, catalog, credentials):
    text = AsyncMock(side_effect=ProviderRequestError("Gemini", "quota exceeded", status=429))
    run, _, image, _ = await _run(make_config(), [], catalog, credentials, text=text)

    assert run.stage == RunStage.FAILED
    assert "quota exceeded" in run.error
    image.assert_not_awaited()


@pytest.mark.asyncio
async def test_extra_panels_are_dropped(make_config, catalog, credentials, panel_script, png_bytes):
    run, _, image, _ = await _run(
        make_config(num_pages=3), [], catalog, credentials,
        text=AsyncMock(return_value=panel_script(5)),
        image=AsyncMock(return_value=[png_bytes]),
    )
    assert run.stage == RunStage.COMPLETE
    assert [p.dialogue_or_caption for p in run.panels] == ["Caption 1", "Caption 2", "Caption 3"]
    assert image.await_count == 3


@pytest.mark.asyncio
async def test_too_few_panels_fails_the_run(make_config, catalog, credentials, panel_script):
    run, _, image, _ = await _run(
        make_config(num_pages=3), [], catalog, credentials,
        text=AsyncMock(return_value=panel_script(2)),
    )
    assert run.stage == RunStage.FAILED
    assert "2 panel(s) but 3 were requested" in run.error
    image.assert_not_awaited()


# ---------- Credentials ----------

@pytest.mark.asyncio
async def test_missing_credentials_make_no_calls(make_config, catalog):
    run, text, image, analysis = await _run(make_config(), [], catalog, Credentials())

    assert run.stage == RunStage.FAILED
    assert run.error_type == "MissingCredentials"
    text.assert_not_awaited()
    image.assert_not_awaited()
    analysis.assert_not_awaited()


@pytest.mark.asyncio
async def test_keyless_provider_runs_without_credentials(make_config, catalog, panel_script, png_bytes):
    config = make_config(text_model="openai", image_model="flux", num_pages=1)
    run, _, _, _ = await _run(
        config, [], catalog, Credentials(),
        text=AsyncMock(return_value=panel_script(1)),
        image=AsyncMock(return_value=[png_bytes]),
    )
    assert run.stage == RunStage.COMPLETE


def test_analysis_model_key_only_needed_with_reference_images(make_config, catalog, max_with_images):
    config = make_config(text_model="openai", image_model="flux")
    check_credentials(config, [Character(name="Max")], catalog, Credentials())

    with pytest.raises(MissingCredentials):
        check_credentials(config, [max_with_images], catalog, Credentials())


# ---------- Character Analysis ----------

def test_needs_character_analysis(make_config, catalog, max_with_images):
    imagen = catalog.find_image_model(make_config().image_model)
    multimodal = catalog.find_image_model(GEMINI_FLASH_CHAT_IMAGE_GEN_MODEL_ID)

    assert needs_character_analysis(make_config(), [max_with_images], imagen)
    assert not needs_character_analysis(make_config(), [max_with_images], multimodal)
    assert not needs_character_analysis(make_config(), [Character(name="Max")], imagen)
    assert not needs_character_analysis(make_config(character_analysis_model=None), [max_with_images], imagen)


@pytest.mark.asyncio
async def test_one_failed_analysis_does_not_fail_the_run(make_config, catalog, credentials, panel_script, png_bytes, reference_image):
    characters = [
        Character(name="Max", reference_images=[reference_image]),
        Character(name="Bob", reference_images=[reference_image]),
    ]
    analysis = AsyncMock(side_effect=["A tall man in a grey coat", CharacterAnalysisFailure("Bob", "empty description")])
    run, _, image, analysis = await _run(
        make_config(num_pages=1), characters, catalog, credentials,
        text=AsyncMock(return_value=panel_script(1)),
        image=AsyncMock(return_value=[png_bytes]),
        analysis=analysis,
    )

    assert run.stage == RunStage.COMPLETE
    assert analysis.await_count == 2
    assert run.characters[0].text_description == "A tall man in a grey coat"
    assert run.characters[1].text_description is None
    assert run.character_errors == ["Failed to analyze character Bob: empty description"]

    prompt = image.await_args.args[1]
    assert 'Important Character: Max. Description: "A tall man in a grey coat".' in prompt
    assert image.await_args.kwargs["reference_images"] is None

    # The caller's characters are left untouched
    assert characters[0].text_description is None


@pytest.mark.asyncio
async def test_multimodal_image_model_skips_analysis(make_config, catalog, credentials, panel_script, png_bytes, max_with_images):
    config = make_config(num_pages=1, image_model=GEMINI_FLASH_CHAT_IMAGE_GEN_MODEL_ID)
    run, _, image, analysis = await _run(
        config, [max_with_images], catalog, credentials,
        text=AsyncMock(return_value=panel_script(1)),
        image=AsyncMock(return_value=[png_bytes]),
    )

    assert run.stage == RunStage.COMPLETE
    analysis.assert_not_awaited()
    assert image.await_args.kwargs["reference_images"] == max_with_images.reference_images
    assert "Featuring Max (refer to provided images for appearance)." in image.await_args.args[1]


@pytest.mark.asyncio
async def test_unknown_analysis_model_fails_the_run(make_config, catalog, credentials, max_with_images):
    config = make_config(character_analysis_model="no-such-analyzer")
    run, text, _, analysis = await _run(config, [max_with_images], catalog, credentials)

    assert run.stage == RunStage.FAILED
    assert run.error_type == "UnknownProviderDispatch"
    assert run.error.startswith("Failed to analyze characters:")
    analysis.assert_not_awaited()
    text.assert_not_awaited()


# ---------- Persistence ----------

@pytest.mark.asyncio
async def test_images_and_checkpoints_are_saved(make_config, catalog, credentials, panel_script, png_bytes, isolated_output):
    run, _, _, _ = await _run(
        make_config(num_pages=2), [], catalog, credentials,
        text=AsyncMock(return_value=panel_script(2)),
        image=AsyncMock(return_value=[png_bytes]),
        save_images=True,
        save_checkpoints=True,
    )

    assert all(p.image_path and os.path.exists(p.image_path) for p in run.panels)
    checkpoints = list((isolated_output / "data").rglob(f"run_{run.run_id}_after_*.json"))
    assert len(checkpoints) == 2

    final = next(c for c in checkpoints if c.name.endswith("after_complete.json"))
    data = json.loads(final.read_text(encoding="utf-8"))
    assert data["stage"] == "complete"
    assert "image_url" not in data["panels"][0]


# ---------- Session ----------

@pytest.mark.asyncio
async def test_superseded_run_cannot_update_session(make_config, catalog, credentials, panel_script, png_bytes):
    gate = asyncio.Event()

    async def fake_text(model, prompt, **kwargs):
        if "first story" in prompt:
            await gate.wait()
        return panel_script(1)

    updates = []
    session = ComicSession(catalog, credentials, on_update=lambda r: updates.append(r.run_id))
    first_config = make_config(story_script="The first story about Max.", num_pages=1)
    second_config = make_config(story_script="The second story about Max.", num_pages=1)

    p_text, p_image, p_analysis = _patch_providers(
        text=AsyncMock(side_effect=fake_text),
        image=AsyncMock(return_value=[png_bytes]),
    )
    with p_text, p_image, p_analysis:
        first_task = asyncio.create_task(session.submit(first_config))
        while session.current is None or session.current.stage != RunStage.GENERATING_PANEL_CONTENT:
            await asyncio.sleep(0)
        first_id = session.current.run_id

        seen_before_second = len(updates)
        second = await session.submit(second_config)
        gate.set()
        first = await first_task

    assert first.run_id == first_id
    assert first.stage == RunStage.COMPLETE
    assert session.current is second
    assert session.is_current(second) and not session.is_current(first)
    assert first_id not in updates[seen_before_second:]
    assert session.panels == second.panels
