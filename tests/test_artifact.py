import pytest
from pydantic import ValidationError

from comic_core.artifact import Character, GeneratedPanel, PanelContent, ReferenceImage, RunContext, RunStage


def test_character_name_is_trimmed_and_required():
    assert Character(name="  Max ").name == "Max"
    with pytest.raises(ValidationError):
        Character(name="   ")


def test_character_reference_image_limit(png_bytes):
    images = [ReferenceImage(data=png_bytes) for _ in range(6)]
    with pytest.raises(ValidationError):
        Character(name="Max", reference_images=images)
    assert Character(name="Max", reference_images=images[:5]).has_reference_images


def test_character_description_flag():
    assert not Character(name="Max", text_description="  ").has_description
    assert Character(name="Max", text_description="Tall").has_description


@pytest.mark.parametrize("overrides", [
    {"story_script": "Too short"},
    {"story_script": "x" * 10001},
    {"num_pages": 0},
    {"num_pages": 201},
    {"aspect_ratio": "21:9"},
])
def test_invalid_run_configuration(make_config, overrides):
    with pytest.raises(ValidationError):
        make_config(**overrides)


def test_run_configuration_defaults(make_config):
    config = make_config(character_analysis_model="  ")
    assert config.character_analysis_model is None
    assert config.aspect_ratio == "16:9"
    assert config.seed == 42
    assert config.include_captions and not config.overlay_text


def test_run_configuration_is_frozen(make_config):
    config = make_config()
    with pytest.raises(ValidationError):
        config.num_pages = 10


def test_title_from_story(make_config):
    assert make_config().title == "Max_the_detective_chases_a_thi"


def test_unknown_fields_are_rejected():
    with pytest.raises(ValidationError):
        PanelContent(scene_description="A", dialogue_or_caption="B", mood="tense")


def test_generated_panel_from_content():
    content = PanelContent(scene_description="Max waits", dialogue_or_caption="...")
    panel = GeneratedPanel.from_content(content, "run-0")
    assert panel.id == "run-0"
    assert panel.scene_description == "Max waits"
    assert panel.is_pending and not panel.is_generating


def test_new_run_context_is_idle(make_config):
    run = RunContext(config=make_config())
    assert run.stage == RunStage.IDLE
    assert not run.is_finished
    assert run.panels == [] and run.character_errors == []
    assert RunContext(config=make_config()).run_id != run.run_id
