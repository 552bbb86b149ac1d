"""Tests for scene parsing, prompt construction and the ScenePipeline (mocked capabilities)."""
import json
import threading
from unittest.mock import MagicMock

import pytest

from settlers.engine.errors import FormatError, GenerationError
from settlers.nlg.prompt_templates import (
    HABITAT_RULES,
    OPENING_PROMPT,
    STORY_CONTINUE_PROMPT,
    SYSTEM_PROMPT,
)
from settlers.nlg.scene import (
    CapabilityProfile,
    ImagePurpose,
    Scene,
    parse_scene_payload,
    response_schema,
    strip_code_fence,
)
from settlers.nlg.scene_pipeline import ScenePipeline


def _payload(**overrides):
    data = {
        "story": "Red dust settles over the wreckage.",
        "imagePrompt": "A crashed shuttle on the plains of Mars",
        "choices": ["Search the wreckage", "Check the oxygen"],
        "newItem": "",
        "gameOver": False,
        "habitatStatus": "A lone crashed shuttle.",
        "habitatModules": [{"id": "shuttle-1", "type": "shuttle", "connectedToId": None}],
    }
    data.update(overrides)
    return data


def _mock_client(payload=None, image="data:image/png;base64,AAAA"):
    m = MagicMock()
    m.chat_structured.return_value = json.dumps(payload or _payload())
    m.generate_image.return_value = image
    return m


# ── Prompt templates ────────────────────────────────────────────────

class TestPromptTemplates:
    def test_system_prompt_nonempty(self):
        assert "Settlers of Mars" in SYSTEM_PROMPT

    def test_continue_prompt_slots(self):
        rendered = STORY_CONTINUE_PROMPT.format(history="It was cold.", action="Build Biodome")
        assert "It was cold." in rendered
        assert '"Build Biodome"' in rendered


# ── Fence stripping / parsing ───────────────────────────────────────

class TestParseScenePayload:
    def test_raw_json(self):
        payload = parse_scene_payload(json.dumps(_payload()), CapabilityProfile.HABITAT)
        assert payload.story.startswith("Red dust")
        assert payload.image_prompt.startswith("A crashed shuttle")
        assert payload.habitat_modules[0].id == "shuttle-1"

    @pytest.mark.parametrize("fence", ["```json\n", "```\n", "```JSON\n"])
    def test_fenced_json(self, fence):
        raw = fence + json.dumps(_payload()) + "\n```"
        payload = parse_scene_payload(raw, CapabilityProfile.HABITAT)
        assert payload.choices == ["Search the wreckage", "Check the oxygen"]

    def test_strip_code_fence_leaves_plain_text(self):
        assert strip_code_fence('  {"a": 1}  ') == '{"a": 1}'

    def test_empty_item_is_none(self):
        payload = parse_scene_payload(json.dumps(_payload(newItem="  ")), CapabilityProfile.HABITAT)
        assert payload.new_item is None

    def test_null_item_is_none(self):
        payload = parse_scene_payload(json.dumps(_payload(newItem=None)), CapabilityProfile.HABITAT)
        assert payload.new_item is None

    def test_item_kept(self):
        payload = parse_scene_payload(json.dumps(_payload(newItem="Power Cell")), CapabilityProfile.HABITAT)
        assert payload.new_item == "Power Cell"

    def test_invalid_json_keeps_raw_text(self):
        with pytest.raises(FormatError) as info:
            parse_scene_payload("The story continues...", CapabilityProfile.HABITAT)
        assert info.value.raw_text == "The story continues..."

    def test_non_object_rejected(self):
        with pytest.raises(FormatError):
            parse_scene_payload("[1, 2, 3]", CapabilityProfile.HABITAT)

    def test_missing_field_rejected(self):
        data = _payload()
        del data["habitatModules"]
        with pytest.raises(FormatError, match="habitatModules"):
            parse_scene_payload(json.dumps(data), CapabilityProfile.HABITAT)

    def test_classic_profile_does_not_require_habitat(self):
        data = _payload()
        del data["habitatModules"]
        del data["habitatStatus"]
        payload = parse_scene_payload(json.dumps(data), CapabilityProfile.CLASSIC)
        assert payload.habitat_modules == []

    @pytest.mark.parametrize("field,value", [
        ("gameOver", "false"),
        ("story", 42),
        ("choices", "Go north"),
        ("choices", [1, 2]),
    ])
    def test_wrong_types_not_coerced(self, field, value):
        with pytest.raises(FormatError):
            parse_scene_payload(json.dumps(_payload(**{field: value})), CapabilityProfile.HABITAT)

    def test_empty_choices_rejected_unless_game_over(self):
        with pytest.raises(FormatError):
            parse_scene_payload(json.dumps(_payload(choices=[])), CapabilityProfile.HABITAT)
        payload = parse_scene_payload(json.dumps(_payload(choices=[], gameOver=True)), CapabilityProfile.HABITAT)
        assert payload.game_over is True

    def test_bad_module_rejected(self):
        modules = [{"id": "shuttle-1", "type": "spaceship"}]
        with pytest.raises(FormatError):
            parse_scene_payload(json.dumps(_payload(habitatModules=modules)), CapabilityProfile.HABITAT)

    def test_module_id_with_newline_rejected(self):
        modules = [{"id": "shuttle-1\nv 9 9 9", "type": "shuttle", "connectedToId": None}]
        with pytest.raises(FormatError):
            parse_scene_payload(json.dumps(_payload(habitatModules=modules)), CapabilityProfile.HABITAT)

    @pytest.mark.parametrize("field", ["story", "imagePrompt"])
    @pytest.mark.parametrize("value", ["", "   ", "\n\t"])
    def test_blank_text_rejected(self, field, value):
        with pytest.raises(FormatError) as excinfo:
            parse_scene_payload(json.dumps(_payload(**{field: value})), CapabilityProfile.HABITAT)
        assert field in str(excinfo.value)

    def test_story_text_stripped(self):
        payload = parse_scene_payload(
            json.dumps(_payload(story="  Dust everywhere.\n")), CapabilityProfile.HABITAT
        )
        assert payload.story == "Dust everywhere."


class TestResponseSchema:
    def test_habitat_fields_per_profile(self):
        assert "habitatModules" in response_schema(CapabilityProfile.HABITAT)["properties"]
        assert "habitatModules" not in response_schema(CapabilityProfile.CLASSIC)["properties"]

    def test_all_properties_required(self):
        schema = response_schema(CapabilityProfile.HABITAT_RENDER)
        assert set(schema["required"]) == set(schema["properties"])


# ── ScenePipeline ───────────────────────────────────────────────────

class TestScenePipeline:
    def test_opening_request(self):
        client = _mock_client()
        pipeline = ScenePipeline(client=client, profile=CapabilityProfile.HABITAT)
        pipeline.fetch_next_scene("", "Start the game")

        messages = client.chat_structured.call_args.args[0]
        assert messages[0]["content"] == SYSTEM_PROMPT + HABITAT_RULES
        assert messages[1]["content"] == OPENING_PROMPT
        assert client.chat_structured.call_args.kwargs["temperature"] == pytest.approx(0.8)

    def test_continue_request(self):
        client = _mock_client()
        pipeline = ScenePipeline(client=client, profile=CapabilityProfile.HABITAT)
        pipeline.fetch_next_scene("Turn one.\n---\nTurn two.", "Build Biodome")

        user = client.chat_structured.call_args.args[0][1]["content"]
        assert "Turn one.\n---\nTurn two." in user
        assert '"Build Biodome"' in user

    def test_classic_prompt_omits_habitat_rules(self):
        pipeline = ScenePipeline(client=_mock_client(), profile=CapabilityProfile.CLASSIC)
        system = pipeline.build_messages("", "Start the game")[0]["content"]
        assert HABITAT_RULES not in system

    def test_returns_scene_with_primary_image(self):
        client = _mock_client()
        scene = ScenePipeline(client=client, profile=CapabilityProfile.HABITAT).fetch_next_scene("", "Start")
        assert isinstance(scene, Scene)
        assert scene.primary_image == "data:image/png;base64,AAAA"
        assert scene.habitat_image is None
        client.generate_image.assert_called_once()
        prompt, aspect = client.generate_image.call_args.args
        assert prompt.startswith("A crashed shuttle")
        assert prompt.endswith(", sci-fi, realistic")
        assert aspect == "wide"

    def test_habitat_render_profile_requests_two_images(self):
        client = _mock_client()
        client.generate_image.side_effect = lambda prompt, aspect: f"img:{aspect}"
        scene = ScenePipeline(client=client, profile=CapabilityProfile.HABITAT_RENDER).fetch_next_scene("", "Start")
        assert scene.images == {
            ImagePurpose.PRIMARY: "img:wide",
            ImagePurpose.HABITAT_RENDER: "img:square",
        }
        prompts = [c.args[0] for c in client.generate_image.call_args_list]
        assert any("A lone crashed shuttle." in p for p in prompts)

    def test_two_images_run_concurrently(self):
        both_started = threading.Barrier(2, timeout=5)

        def render(prompt, aspect):
            both_started.wait()
            return f"img:{aspect}"

        client = _mock_client()
        client.generate_image.side_effect = render
        scene = ScenePipeline(client=client, profile=CapabilityProfile.HABITAT_RENDER).fetch_next_scene("", "Start")
        assert len(scene.images) == 2

    def test_generation_error_propagates(self):
        client = _mock_client()
        client.chat_structured.side_effect = GenerationError("service down")
        with pytest.raises(GenerationError):
            ScenePipeline(client=client).fetch_next_scene("", "Start")
        client.generate_image.assert_not_called()

    def test_format_error_skips_images(self):
        client = _mock_client()
        client.chat_structured.return_value = "not json"
        with pytest.raises(FormatError):
            ScenePipeline(client=client).fetch_next_scene("", "Start")
        client.generate_image.assert_not_called()

    def test_image_failure_is_generation_error(self):
        client = _mock_client()
        client.generate_image.side_effect = RuntimeError("quota")
        with pytest.raises(GenerationError):
            ScenePipeline(client=client, profile=CapabilityProfile.HABITAT).fetch_next_scene("", "Start")

    def test_either_render_failure_fails_turn(self):
        def render(prompt, aspect):
            if aspect == "square":
                raise GenerationError("render failed")
            return "img"

        client = _mock_client()
        client.generate_image.side_effect = render
        with pytest.raises(GenerationError):
            ScenePipeline(client=client, profile=CapabilityProfile.HABITAT_RENDER).fetch_next_scene("", "Start")


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
