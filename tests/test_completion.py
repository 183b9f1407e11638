import os

import pytest

from browser_tools.completion import COMPLETED, TIMED_OUT, CompletionDetector, is_on_target
from browser_tools.errors import CompletionTimeout
from browser_tools.site_profile import AntiStallConfig
from conftest import FakeElement, FakePage, make_profile


@pytest.fixture
def profile(llm_selectors):
    return make_profile(selectors=llm_selectors, anti_stall=AntiStallConfig(stall_after=2.0))


def detector_for(page, profile, clock, tmp_path):
    return CompletionDetector(page, profile, artifacts_dir=str(tmp_path), sleep=clock.sleep, clock=clock)


def clear_after(page, selector, at):
    def hook(now):
        if now >= at:
            page.dom.pop(selector, None)
    return hook


def test_idle_page_completes_after_one_settle_cycle(profile, clock, tmp_path):
    page = FakePage(url="https://chat.example.com/c/1")
    detector = detector_for(page, profile, clock, tmp_path)

    result = detector.await_completion(timeout=30)

    assert result.completed is True
    assert result.heuristics_observed == []
    assert result.elapsed_ms == 600
    assert detector.state == COMPLETED


def test_waits_until_generating_indicator_disappears(profile, clock, tmp_path):
    page = FakePage({".result-streaming": [FakeElement()]})
    clock.hooks.append(clear_after(page, ".result-streaming", 1.5))

    result = detector_for(page, profile, clock, tmp_path).await_completion(timeout=30)

    assert result.completed
    assert result.heuristics_observed == ["generatingIndicators"]
    assert result.elapsed_ms >= 1500
    assert result.to_dict()["heuristicsObserved"] == ["generatingIndicators"]


def test_visible_stop_button_keeps_waiting(profile, clock, tmp_path):
    page = FakePage({"button[data-testid='stop-button']": [FakeElement()]})
    clock.hooks.append(clear_after(page, "button[data-testid='stop-button']", 3))

    result = detector_for(page, profile, clock, tmp_path).await_completion(timeout=30)

    assert result.completed
    assert result.heuristics_observed == ["stopButton"]


def test_extra_stall_indicators_count_as_activity(llm_selectors, clock, tmp_path):
    profile = make_profile(selectors=llm_selectors, additional_stall_indicators=(".thinking",))
    page = FakePage({".thinking": [FakeElement()], ".custom": [FakeElement()]})
    clock.hooks.append(clear_after(page, ".thinking", 2))
    clock.hooks.append(clear_after(page, ".custom", 2))

    result = detector_for(page, profile, clock, tmp_path).await_completion(timeout=30, stall_heuristics=[".custom"])

    assert result.heuristics_observed == ["stallHeuristics"]


def test_timeout_raises_with_observed_heuristics_and_artifacts(profile, clock, tmp_path):
    page = FakePage({".spinner": [FakeElement()]})
    detector = detector_for(page, profile, clock, tmp_path)

    with pytest.raises(CompletionTimeout) as excinfo:
        detector.await_completion(timeout=5)

    err = excinfo.value
    assert err.target_id == "chatgpt"
    assert "spinnerIndicators" in err.heuristics_observed
    assert os.path.exists(err.artifacts["screenshotPath"])
    assert os.path.exists(err.artifacts["htmlPath"])
    assert detector.state == TIMED_OUT
    assert clock.now >= 5


def test_unchanged_activity_triggers_anti_stall_nudge(profile, clock, tmp_path):
    prompt = FakeElement()
    page = FakePage({".typing": [FakeElement()], "#prompt-textarea": [prompt]})
    clock.hooks.append(clear_after(page, ".typing", 6))

    result = detector_for(page, profile, clock, tmp_path).await_completion(timeout=30)

    assert result.completed
    assert result.heuristics_observed == ["typingIndicators", "anti-stall"]
    page.mouse.wheel.assert_called()
    page.mouse.move.assert_called()
    assert prompt.clicks >= 1


def test_nudge_respects_disabled_actions(llm_selectors, clock, tmp_path):
    profile = make_profile(selectors=llm_selectors,
                           anti_stall=AntiStallConfig(scroll=False, refocus=False, jitter=False))
    page = FakePage()

    detector_for(page, profile, clock, tmp_path).nudge()

    page.mouse.wheel.assert_not_called()
    page.mouse.move.assert_not_called()


def test_no_blocking_state(profile, clock, tmp_path):
    page = FakePage(url="https://chat.example.com/c/abc")

    state = detector_for(page, profile, clock, tmp_path).handle_errors()

    assert state.recovered is True
    assert state.requires_user is False
    assert state.reason == "none"


@pytest.mark.parametrize("url,dom,reason", [
    ("https://auth.other.com/login", {}, "redirected"),
    ("https://chat.example.com/", {"button[data-testid='login-button']": [FakeElement()]}, "login-required"),
    ("https://chat.example.com/", {"iframe[src*='recaptcha']": [FakeElement()]}, "captcha"),
    ("https://chat.example.com/", {"#challenge-form": [FakeElement()]}, "cloudflare"),
])
def test_blocking_states(profile, clock, tmp_path, url, dom, reason):
    page = FakePage(dom, url=url)

    state = detector_for(page, profile, clock, tmp_path).handle_errors()

    assert state.recovered is False
    assert state.requires_user is True
    assert state.reason == reason
    assert state.artifacts["screenshotPath"]


def test_login_wall_wins_over_captcha(profile, clock, tmp_path):
    page = FakePage({
        "button[data-testid='login-button']": [FakeElement()],
        "iframe[src*='recaptcha']": [FakeElement()],
    }, url="https://chat.example.com/")

    assert detector_for(page, profile, clock, tmp_path).handle_errors().reason == "login-required"


def test_hidden_indicators_do_not_block(profile, clock, tmp_path):
    page = FakePage({"#challenge-form": [FakeElement(visible=False)]}, url="https://chat.example.com/")
    assert detector_for(page, profile, clock, tmp_path).handle_errors().recovered


@pytest.mark.parametrize("url,base,expected", [
    ("https://chat.example.com/c/1", "https://chat.example.com/", True),
    ("https://www.linkedin.com/jobs", "https://linkedin.com/", True),
    ("https://evil-linkedin.com/", "https://linkedin.com/", False),
    ("https://accounts.google.com/", "https://gemini.google.com/", False),
    ("", "https://chat.example.com/", False),
])
def test_is_on_target(url, base, expected):
    assert is_on_target(url, base) is expected
