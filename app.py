"""Settlers of Mars – Gradio UI over the session controller.

Layout (gr.Blocks):
  Left column (2/5):  inventory  +  habitat render & status  +  story log
  Right column (3/5): scene image  +  story  +  choices
"""
from __future__ import annotations

import logging
import os
import sys
from typing import List, Optional

import gradio as gr

# Ensure project root is on the path
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from config import settings
from settlers.engine.session_controller import SessionController
from settlers.engine.state import GameState, InventoryTracker, Session
from settlers.habitat.exporter import write_obj
from settlers.habitat.visualizer import render_habitat_html

logger = logging.getLogger(__name__)

# ── Global controller (lazy, one per process) ────────────────────────────
_controller: SessionController | None = None


def _get_controller() -> SessionController:
    global _controller
    if _controller is None:
        _controller = SessionController()
    return _controller


# ── Helpers ──────────────────────────────────────────────────────────────

def format_inventory(inventory: InventoryTracker) -> str:
    if not inventory.items:
        return "*Your pack is empty.*"
    lines = []
    for item in inventory.items:
        marker = " ✦ *new*" if item == inventory.last_added else ""
        lines.append(f"- {item}{marker}")
    return "\n".join(lines)


def format_story_log(session: Session) -> str:
    return "\n\n---\n\n".join(e.story for e in reversed(session.story_log.entries))


def format_image(url: Optional[str]) -> str:
    if not url:
        return ""
    return f"<img src='{url}' alt='Scene' style='width:100%;border-radius:6px;'>"


def format_story(session: Session) -> str:
    if session.state is GameState.START:
        return (
            "# SETTLERS OF MARS\nYour shuttle has crash-landed. You are the sole survivor. "
            "Every choice matters. Can you survive?"
        )
    if session.state is GameState.ERROR:
        return f"# TRANSMISSION FAILED\n{session.last_error or 'An unknown error occurred.'}"
    story = session.current_scene.story if session.current_scene else ""
    if session.state is GameState.GAME_OVER:
        return f"# GAME OVER\n{story}"
    return story


def _render(controller: SessionController):
    session = controller.snapshot()
    scene = session.current_scene
    playing = session.state is GameState.PLAYING
    choices: List[str] = list(scene.choices) if scene and playing else []
    return (
        format_story(session),
        format_image(scene.primary_image if scene else None),
        gr.update(choices=choices, value=None, visible=bool(choices)),
        format_inventory(session.inventory),
        render_habitat_html(session.habitat, controller.layout()),
        scene.habitat_status if scene else "",
        format_story_log(session),
    )


# ── Callbacks ────────────────────────────────────────────────────────────

def start_game():
    controller = _get_controller()
    future = controller.start()
    if future is not None:
        future.result()
    return _render(controller)


def submit_choice(choice: Optional[str]):
    controller = _get_controller()
    if choice:
        future = controller.choose(choice)
        if future is not None:
            future.result()
    return _render(controller)


def refresh():
    return _render(_get_controller())


def reset_game():
    controller = _get_controller()
    controller.reset()
    return _render(controller)


def export_habitat():
    controller = _get_controller()
    session = controller.snapshot()
    if not len(session.habitat):
        return None
    return str(write_obj(session.habitat, controller.layout()))


# ── UI Layout ────────────────────────────────────────────────────────────

def build_ui() -> gr.Blocks:
    with gr.Blocks(
        title="Settlers of Mars",
        theme=gr.themes.Soft(primary_hue="orange", secondary_hue="red"),
        css=".habitat-panel { border:1px solid #444; border-radius:8px; padding:8px; min-height:300px; }",
    ) as demo:
        with gr.Row():
            begin_btn = gr.Button("Begin Expedition", variant="primary", scale=1)
            reset_btn = gr.Button("Restart Mission", scale=1)

        with gr.Row():
            # ── Left column ──
            with gr.Column(scale=2):
                inventory_md = gr.Markdown(label="Inventory")
                habitat_html = gr.HTML(label="Habitat", elem_classes="habitat-panel")
                habitat_status = gr.Markdown("")
                export_btn = gr.Button("Download .obj", size="sm")
                export_file = gr.File(label="Habitat export", interactive=False)
                with gr.Accordion("Story Log", open=False):
                    log_md = gr.Markdown("")

            # ── Right column ──
            with gr.Column(scale=3):
                scene_image = gr.HTML(label="Scene")
                story_md = gr.Markdown("")
                choice_radio = gr.Radio(
                    choices=[], label="What do you do?", interactive=True, visible=False,
                )

        outputs = [story_md, scene_image, choice_radio, inventory_md,
                   habitat_html, habitat_status, log_md]

        # ── Wiring ──
        begin_btn.click(fn=start_game, outputs=outputs)
        reset_btn.click(fn=reset_game, outputs=outputs)
        choice_radio.input(fn=submit_choice, inputs=[choice_radio], outputs=outputs)
        export_btn.click(fn=export_habitat, outputs=export_file)
        demo.load(fn=refresh, outputs=outputs)

    return demo


if __name__ == "__main__":
    logging.basicConfig(level=settings.LOG_LEVEL)
    demo = build_ui()
    demo.launch(server_name="0.0.0.0", server_port=settings.GRADIO_PORT, share=False)
