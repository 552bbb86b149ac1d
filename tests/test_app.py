"""Tests for the Gradio UI formatting helpers."""
import pytest

from app import format_image, format_inventory, format_story
from settlers.engine.state import GameState, InventoryTracker, Session


class TestFormatting:
    def test_empty_inventory(self):
        assert "empty" in format_inventory(InventoryTracker())

    def test_last_added_marked(self):
        inv = InventoryTracker()
        inv.add("Medkit")
        inv.add("Power Cell")
        lines = format_inventory(inv).splitlines()
        assert lines[0] == "- Medkit"
        assert "new" in lines[1]

    def test_error_story_shows_message(self):
        session = Session(state=GameState.ERROR, last_error="Transmission failed: down")
        assert "Transmission failed: down" in format_story(session)

    def test_start_screen(self):
        assert "SETTLERS OF MARS" in format_story(Session())

    def test_image_html(self):
        assert format_image(None) == ""
        assert "src='data:image/png;base64,AA'" in format_image("data:image/png;base64,AA")


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
