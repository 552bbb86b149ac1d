"""Scene pipeline: narrative request → validated payload → image renders → Scene.

The narrative reply always comes first because image prompts are taken from
it.  When the habitat is also rendered, the two image requests share nothing
and run concurrently on a short-lived thread pool.  Nothing here touches
session state; either a complete :class:`Scene` is returned or an error
propagates.
"""
from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, List, Optional, Tuple

from config import settings
from settlers.engine.errors import GenerationError
from settlers.nlg.prompt_templates import (
    HABITAT_RENDER_PROMPT,
    HABITAT_RULES,
    IMAGE_STYLE_SUFFIX,
    OPENING_PROMPT,
    STORY_CONTINUE_PROMPT,
    SYSTEM_PROMPT,
)
from settlers.nlg.scene import (
    CapabilityProfile,
    ImagePurpose,
    Scene,
    ScenePayload,
    parse_scene_payload,
    response_schema,
)

logger = logging.getLogger(__name__)


class ScenePipeline:
    """Fetch and validate the next scene from the narrative and image capabilities."""

    def __init__(self, client: Any = None, profile: Optional[CapabilityProfile] = None) -> None:
        if client is None:
            from settlers.utils.api_client import llm_client

            client = llm_client
        self.client = client
        self.profile = CapabilityProfile(profile or settings.CAPABILITY_PROFILE)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def fetch_next_scene(self, history: str, action: str) -> Scene:
        """Run one turn's generation; raises ``GenerationError`` or ``FormatError``."""
        messages = self.build_messages(history, action)
        logger.debug("Requesting scene (history=%d chars, action=%r)", len(history), action)

        raw = self.client.chat_structured(
            messages,
            response_schema(self.profile),
            temperature=settings.OPENAI_TEMPERATURE,
        )
        payload = parse_scene_payload(raw, self.profile)
        images = self._render_images(payload)
        return Scene.from_payload(payload, images)

    def build_messages(self, history: str, action: str) -> List[Dict[str, str]]:
        system = SYSTEM_PROMPT
        if self.profile.tracks_habitat:
            system += HABITAT_RULES
        if history:
            user = STORY_CONTINUE_PROMPT.format(history=history, action=action)
        else:
            user = OPENING_PROMPT
        return [
            {"role": "system", "content": system},
            {"role": "user", "content": user},
        ]

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _image_jobs(self, payload: ScenePayload) -> Dict[ImagePurpose, Tuple[str, str]]:
        jobs = {ImagePurpose.PRIMARY: (payload.image_prompt + IMAGE_STYLE_SUFFIX, "wide")}
        if self.profile.renders_habitat:
            prompt = HABITAT_RENDER_PROMPT.format(habitat_status=payload.habitat_status)
            jobs[ImagePurpose.HABITAT_RENDER] = (prompt + IMAGE_STYLE_SUFFIX, "square")
        return jobs

    def _generate(self, prompt: str, aspect_ratio: str) -> str:
        try:
            return self.client.generate_image(prompt, aspect_ratio)
        except GenerationError:
            raise
        except Exception as exc:
            raise GenerationError(f"Image request failed: {exc}") from exc

    def _render_images(self, payload: ScenePayload) -> Dict[ImagePurpose, str]:
        jobs = self._image_jobs(payload)
        if len(jobs) == 1:
            return {purpose: self._generate(*job) for purpose, job in jobs.items()}

        with ThreadPoolExecutor(max_workers=len(jobs), thread_name_prefix="scene-image") as pool:
            futures = {purpose: pool.submit(self._generate, *job) for purpose, job in jobs.items()}
            return {purpose: future.result() for purpose, future in futures.items()}
