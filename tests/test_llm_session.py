import pytest

from browser_tools.errors import CompletionTimeout, LocatorNotFound, SessionError
from browser_tools.throttle import Throttle
from career_pilot.llm_session import BrowserLLM, extract_json
from career_pilot.models import PromptPayload
from career_pilot.prompts import PromptRenderer
from conftest import FakeElement, FakePage, make_profile

RESPONSES = "div[data-message-author-role='assistant']"
TEMPLATES = {
    "cover_letter": {"prompt": "Cover letter for {{JOB_TEXT}} in {{LANG}}"},
    "resume_tailoring": {"prompt": "Tailor {{RESUME_TEXT}} to {{JOB_TEXT}}"},
    "form_qa": {"prompt": "Answer {{QUESTION}}"},
    "missing_info": {"prompt": "Ask about {{MISSING_FIELDS}}"},
    "session_check": {"prompt": "Reply with OK"},
}


class FakeSession:
    def __init__(self, page):
        self._page = page
        self.is_open = page is not None
        self.restarts = 0
        self.disposed = False

    def active_page(self, url=None):
        return self._page

    @property
    def page(self):
        if self._page is None:
            raise SessionError("no open session")
        return self._page

    def handle(self):
        class Handle:
            last_error = "Executable doesn't exist"
        return Handle()

    def restart(self):
        self.restarts += 1

    def dispose(self):
        self.disposed = True


class ReplyingSendButton(FakeElement):
    """Clicking it makes the assistant answer with the next scripted reply."""

    def __init__(self, page, replies):
        super().__init__()
        self.page = page
        self.replies = list(replies)

    def click(self, **kwargs):
        super().click(**kwargs)
        self.page.dom.setdefault(RESPONSES, []).append(FakeElement(text=self.replies.pop(0)))


def chat_page(replies, **dom):
    page = FakePage(dict({"#prompt-textarea": [FakeElement()]}, **dom), url="https://chat.example.com/")
    page.dom["button[data-testid='send-button']"] = [ReplyingSendButton(page, replies)]
    return page


def make_llm(page, selectors, clock, tmp_path, max_chars=3500, overlap=200, throttle=None, **profile_kwargs):
    profile = make_profile(selectors=selectors, **profile_kwargs)
    throttle = throttle or Throttle(sleep=lambda s: None)
    return BrowserLLM(profile, FakeSession(page), PromptRenderer(templates=TEMPLATES), throttle,
                      artifacts_dir=str(tmp_path), max_chars=max_chars, overlap=overlap,
                      sleep=clock.sleep, clock=clock)


def test_ask_round_trip(llm_selectors, clock, tmp_path):
    page = chat_page(["Hello back"])
    llm = make_llm(page, llm_selectors, clock, tmp_path)

    assert llm.ask("Hello") == {"text": "Hello back"}
    assert page.dom["#prompt-textarea"][0].value == "Hello"


def test_enter_is_used_without_send_button(llm_selectors, clock, tmp_path):
    page = FakePage({"#prompt-textarea": [FakeElement()]}, url="https://chat.example.com/")
    llm = make_llm(page, llm_selectors, clock, tmp_path)

    llm.send_prompt("Hi")

    assert page.dom["#prompt-textarea"][0].pressed == ["Enter"]


def test_disabled_send_button_falls_back_to_enter(llm_selectors, clock, tmp_path):
    page = chat_page(["unused"])
    page.dom["button[data-testid='send-button']"][0].enabled = False
    llm = make_llm(page, llm_selectors, clock, tmp_path)

    llm.send_prompt("Hi")

    assert page.dom["#prompt-textarea"][0].pressed == ["Enter"]


def test_missing_prompt_input_raises(llm_selectors, clock, tmp_path):
    llm = make_llm(FakePage(url="https://chat.example.com/"), llm_selectors, clock, tmp_path)
    with pytest.raises(LocatorNotFound) as excinfo:
        llm.send_prompt("Hi")
    assert excinfo.value.role == "promptInput"


def test_read_response_takes_last_message(llm_selectors, clock, tmp_path):
    page = FakePage({RESPONSES: [FakeElement(text="old"), FakeElement(text="  new  ")]})
    assert make_llm(page, llm_selectors, clock, tmp_path).read_response() == {"text": "new"}
    assert make_llm(FakePage(), llm_selectors, clock, tmp_path).read_response() == {"text": ""}


def test_open_session_reports_disabled_automation(llm_selectors, clock, tmp_path):
    llm = make_llm(None, llm_selectors, clock, tmp_path)

    opened = llm.open_session()

    assert opened["ok"] is False
    assert opened["provider"] == "chatgpt"
    assert "Executable" in opened["error"]
    assert llm.ask("Hi")["error"] == opened["error"]


def test_rate_limit_applies_only_to_sent_prompts(llm_selectors, clock, tmp_path):
    slept = []
    throttle = Throttle({"chatgpt": 2}, sleep=slept.append)

    disabled = make_llm(None, llm_selectors, clock, tmp_path, throttle=throttle)
    assert disabled.ask("Hi")["error"]
    assert disabled.test_session()["ok"] is False
    assert slept == []

    make_llm(chat_page(["Hello"]), llm_selectors, clock, tmp_path, throttle=throttle).ask("Hi")
    assert len(slept) == 1
    assert slept[0] >= 30


def test_open_session_force_reconnect_restarts(llm_selectors, clock, tmp_path):
    llm = make_llm(chat_page([]), llm_selectors, clock, tmp_path)
    assert llm.open_session(force_reconnect=True)["ok"] is True
    assert llm.session.restarts == 1


def test_login_wall_needs_the_user(llm_selectors, clock, tmp_path):
    page = chat_page(["never"], **{"button[data-testid='login-button']": [FakeElement()]})
    llm = make_llm(page, llm_selectors, clock, tmp_path)

    reply = llm.ask("Hello")

    assert reply["error"] == "login-required"
    assert reply["requiresUser"] is True
    assert page.dom["#prompt-textarea"][0].value == ""


def test_long_prompt_is_sent_in_segments(llm_selectors, clock, tmp_path):
    page = chat_page(["part 1", "part 2", "part 3"])
    llm = make_llm(page, llm_selectors, clock, tmp_path, max_chars=100, overlap=10)

    reply = llm.ask("x" * 250)

    assert reply == {"text": "part 1\npart 2\npart 3"}
    assert page.dom["button[data-testid='send-button']"][0].clicks == 3


def test_generate_cover_letter_renders_template(llm_selectors, clock, tmp_path):
    page = chat_page(["Dear team, ..."])
    llm = make_llm(page, llm_selectors, clock, tmp_path)
    payload = PromptPayload("cover_letter", inputs={"JOB_TEXT": "Backend role"}, constraints={"LANG": "de"})

    assert llm.generate_cover_letter(payload) == {"text": "Dear team, ..."}
    assert page.dom["#prompt-textarea"][0].value == "Cover letter for Backend role in de"


def test_tailor_resume_parses_json_or_keeps_raw_text(llm_selectors, clock, tmp_path):
    payload = PromptPayload("resume_tailoring", inputs={"RESUME_TEXT": "cv", "JOB_TEXT": "job"})

    page = chat_page(['Sure! {"resume": "New CV", "diff": ["Added AWS"]}'])
    assert make_llm(page, llm_selectors, clock, tmp_path).tailor_resume(payload) == {
        "resume": "New CV", "diff": ["Added AWS"]}

    page = chat_page(["Plain resume text"])
    assert make_llm(page, llm_selectors, clock, tmp_path).tailor_resume(payload) == {
        "resume": "Plain resume text", "diff": []}


def test_answer_form_question(llm_selectors, clock, tmp_path):
    payload = PromptPayload("form_qa", inputs={"QUESTION": "Notice period?"})

    page = chat_page(['{"answer": "2 weeks", "needsUserApproval": false}'])
    assert make_llm(page, llm_selectors, clock, tmp_path).answer_form_question(payload) == {
        "answer": "2 weeks", "needsUserApproval": False}

    page = chat_page(["Probably two weeks"])
    assert make_llm(page, llm_selectors, clock, tmp_path).answer_form_question(payload) == {
        "answer": "Probably two weeks", "needsUserApproval": True}


def test_ask_for_missing_caps_questions(llm_selectors, clock, tmp_path):
    payload = PromptPayload("missing_info", inputs={"MISSING_FIELDS": ["salary", "visa"]})
    questions = [{"q": f"Question {i}?", "options": []} for i in range(5)]
    page = chat_page(['{"questions": %s}' % str(questions).replace("'", '"')])

    result = make_llm(page, llm_selectors, clock, tmp_path).ask_for_missing(payload)
    assert len(result["questions"]) == 3

    page = chat_page(["- What salary do you expect?\n- Do you need a visa?\nThanks"])
    result = make_llm(page, llm_selectors, clock, tmp_path).ask_for_missing(payload)
    assert result == {"questions": [
        {"q": "What salary do you expect?", "options": []},
        {"q": "Do you need a visa?", "options": []},
    ]}


def test_completion_timeout_propagates_from_generation(llm_selectors, clock, tmp_path):
    page = chat_page(["..."], **{".result-streaming": [FakeElement()]})
    llm = make_llm(page, llm_selectors, clock, tmp_path, completion_timeout=5.0)

    with pytest.raises(CompletionTimeout):
        llm.generate_cover_letter(PromptPayload("cover_letter"))


def test_unknown_template_becomes_error(llm_selectors, clock, tmp_path):
    llm = make_llm(chat_page([]), llm_selectors, clock, tmp_path)

    result = llm.generate_cover_letter(PromptPayload("no_such_template"))

    assert "no_such_template" in result["error"]
    assert result["artifacts"]["screenshotPath"]


def test_session_check(llm_selectors, clock, tmp_path):
    ok = make_llm(chat_page(["OK"]), llm_selectors, clock, tmp_path).test_session()
    assert ok == {"ok": True, "provider": "chatgpt", "sample": "OK"}

    page = chat_page(["..."], **{".spinner": [FakeElement()]})
    failed = make_llm(page, llm_selectors, clock, tmp_path).test_session()
    assert failed["ok"] is False
    assert "did not complete" in failed["error"]


def test_close_disposes_session(llm_selectors, clock, tmp_path):
    llm = make_llm(chat_page([]), llm_selectors, clock, tmp_path)
    llm.close()
    assert llm.session.disposed


def test_extract_json():
    assert extract_json('noise {"a": 1} trailing') == {"a": 1}
    assert extract_json("no json here") is None
    assert extract_json("{broken") is None
    assert extract_json("") is None
