"""Scene payload shape, its JSON schema, and the validation gate for raw replies.

Raw narrative replies are untrusted.  ``parse_scene_payload`` is the only
way to get from reply text to a :class:`ScenePayload`; anything that does not
fit the shape raises :class:`FormatError` carrying the raw text.
"""
from __future__ import annotations

import json
import logging
import re
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StrictBool,
    StrictStr,
    ValidationError,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

from settlers.engine.errors import FormatError
from settlers.habitat.graph import HabitatModule

logger = logging.getLogger(__name__)


class CapabilityProfile(str, Enum):
    """Which external-capability contract this deployment uses."""

    CLASSIC = "classic"
    HABITAT = "habitat"
    HABITAT_RENDER = "habitat_render"

    @property
    def tracks_habitat(self) -> bool:
        return self is not CapabilityProfile.CLASSIC

    @property
    def renders_habitat(self) -> bool:
        return self is CapabilityProfile.HABITAT_RENDER


class ImagePurpose(str, Enum):
    PRIMARY = "primary"
    HABITAT_RENDER = "habitatRender"


class ScenePayload(BaseModel):
    """One validated narrative reply."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    story: StrictStr = Field(min_length=1)
    image_prompt: StrictStr = Field(min_length=1)
    choices: List[StrictStr] = Field(default_factory=list)
    new_item: Optional[StrictStr] = None
    game_over: StrictBool = False
    habitat_status: StrictStr = ""
    habitat_modules: List[HabitatModule] = Field(default_factory=list)

    @field_validator("story", "image_prompt")
    @classmethod
    def _reject_blank_text(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be blank")
        return value

    @field_validator("new_item")
    @classmethod
    def _blank_item_is_none(cls, value: Optional[str]) -> Optional[str]:
        if value is None or not value.strip():
            return None
        return value.strip()

    @field_validator("choices")
    @classmethod
    def _drop_blank_choices(cls, value: List[str]) -> List[str]:
        return [c.strip() for c in value if c.strip()]

    @model_validator(mode="after")
    def _choices_unless_over(self) -> "ScenePayload":
        if not self.game_over and not self.choices:
            raise ValueError("choices must not be empty unless gameOver is true")
        return self


class Scene(ScenePayload):
    """A :class:`ScenePayload` plus resolved image references keyed by purpose."""

    images: Dict[ImagePurpose, str] = Field(default_factory=dict)

    @property
    def primary_image(self) -> str:
        return self.images[ImagePurpose.PRIMARY]

    @property
    def habitat_image(self) -> Optional[str]:
        return self.images.get(ImagePurpose.HABITAT_RENDER)

    @classmethod
    def from_payload(cls, payload: ScenePayload, images: Dict[ImagePurpose, str]) -> "Scene":
        return cls(**dict(payload), images=images)


# ── JSON schema sent with every narrative request ────────
_BASE_PROPERTIES: Dict[str, Any] = {
    "story": {
        "type": "string",
        "description": "The next part of the story in 1-2 paragraphs. Describe the scene, "
                       "what is happening, and the results of the player's last action.",
    },
    "imagePrompt": {
        "type": "string",
        "description": "A detailed, vivid prompt for an image generator to create a cinematic, "
                       "photorealistic image of the scene. Describe the environment, lighting, "
                       "and key objects. Mars setting.",
    },
    "choices": {
        "type": "array",
        "description": "2 to 4 distinct actions the player can take next.",
        "items": {"type": "string"},
    },
    "newItem": {
        "type": "string",
        "description": "An item the player found or acquired in this scene (e.g. 'Power Cell', "
                       "'Medkit'). Empty string if no item was found.",
    },
    "gameOver": {
        "type": "boolean",
        "description": "True ONLY for a definitive game over (player death or final conclusion).",
    },
}

_HABITAT_PROPERTIES: Dict[str, Any] = {
    "habitatStatus": {
        "type": "string",
        "description": "A concise, 1-2 sentence description of the habitat's current state, "
                       "based on the habitatModules array.",
    },
    "habitatModules": {
        "type": "array",
        "description": "ALL modules of the habitat built so far, previous ones unchanged. "
                       "The first module is always the shuttle.",
        "items": {
            "type": "object",
            "properties": {
                "id": {"type": "string", "description": "Unique, persistent id, e.g. 'biodome-1'."},
                "type": {"type": "string", "enum": ["shuttle", "biodome", "tunnel"]},
                "connectedToId": {
                    "type": ["string", "null"],
                    "description": "Id of the module this one connects to; null for the shuttle.",
                },
            },
            "required": ["id", "type"],
        },
    },
}


def response_schema(profile: CapabilityProfile) -> Dict[str, Any]:
    """JSON schema of the reply expected under *profile*."""
    properties = dict(_BASE_PROPERTIES)
    if profile.tracks_habitat:
        properties.update(_HABITAT_PROPERTIES)
    return {
        "type": "object",
        "properties": properties,
        "required": list(properties),
    }


# ── parsing ──────────────────────────────────────────────
_FENCE_OPEN = re.compile(r"^```[a-zA-Z]*[ \t]*\n?")
_FENCE_CLOSE = re.compile(r"\n?```$")


def strip_code_fence(text: str) -> str:
    """Remove one leading and one trailing markdown fence marker, if present."""
    text = text.strip()
    text = _FENCE_OPEN.sub("", text, count=1)
    text = _FENCE_CLOSE.sub("", text, count=1)
    return text.strip()


def parse_scene_payload(raw_text: str, profile: CapabilityProfile) -> ScenePayload:
    """Validate *raw_text* into a :class:`ScenePayload` or raise :class:`FormatError`."""
    cleaned = strip_code_fence(raw_text or "")
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as exc:
        raise FormatError(f"Reply is not valid JSON: {exc.msg}", raw_text=raw_text) from exc
    if not isinstance(data, dict):
        raise FormatError("Reply is not a JSON object", raw_text=raw_text)

    missing = [key for key in response_schema(profile)["required"] if key not in data]
    if missing:
        raise FormatError(f"Reply is missing field(s): {', '.join(missing)}", raw_text=raw_text)

    try:
        payload = ScenePayload.model_validate(data)
    except ValidationError as exc:
        first = exc.errors()[0]
        where = ".".join(str(p) for p in first["loc"]) or "reply"
        raise FormatError(f"Invalid {where}: {first['msg']}", raw_text=raw_text) from exc

    logger.debug("Parsed scene: %d choice(s), %d module(s)", len(payload.choices), len(payload.habitat_modules))
    return payload
