import os
from unittest.mock import MagicMock

from browser_tools.logger import get_logger, save_debug_artifact
from conftest import FakePage


def test_child_loggers_share_the_app_logger():
    assert get_logger("Scraper").name == "CareerPilot.Scraper"


def test_saves_screenshot_and_html(tmp_path):
    artifacts = save_debug_artifact(FakePage(), "linkedin_error", str(tmp_path))

    assert os.path.basename(artifacts["screenshotPath"]).startswith("linkedin_error_")
    assert os.path.exists(artifacts["screenshotPath"])
    with open(artifacts["htmlPath"], encoding="utf-8") as f:
        assert f.read() == "<html></html>"


def test_failures_are_swallowed(tmp_path):
    page = MagicMock()
    page.screenshot.side_effect = RuntimeError("Target closed")
    page.content.side_effect = RuntimeError("Target closed")

    assert save_debug_artifact(page, "x", str(tmp_path)) == {"screenshotPath": None, "htmlPath": None}


def test_no_page_means_no_artifacts():
    assert save_debug_artifact(None) == {"screenshotPath": None, "htmlPath": None}
