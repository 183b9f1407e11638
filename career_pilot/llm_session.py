import json
import re
import time

from browser_tools.completion import CompletionDetector
from browser_tools.errors import CompletionTimeout, LocatorNotFound, SessionError
from browser_tools.human_actions import dismiss_cookie_banner, human_delay
from browser_tools.locators import first_visible, resolve
from browser_tools.logger import get_logger, save_debug_artifact
from browser_tools.segmenter import DEFAULT_MAX_CHARS, DEFAULT_OVERLAP, split_and_chain
from career_pilot.models import PromptPayload

logger = get_logger("BrowserLLM")

_JSON_BLOCK = re.compile(r"\{.*\}", re.DOTALL)


def extract_json(text):
    """Parses the first {...} block of an LLM reply, or returns None."""
    if not text:
        return None
    match = _JSON_BLOCK.search(text)
    if not match:
        return None
    try:
        return json.loads(match.group(0))
    except ValueError:
        return None


class BrowserLLM:
    """Automates an LLM chat front-end through a persistent browser tab.

    One generic driver for every provider; providers differ only in their
    SiteProfile (selectors, extra stall indicators, timeouts).
    """

    def __init__(self, profile, session, renderer, throttle, artifacts_dir=None,
                 max_chars=DEFAULT_MAX_CHARS, overlap=DEFAULT_OVERLAP, sleep=time.sleep, clock=time.monotonic):
        self.profile = profile
        self.provider = profile.target_id
        self.session = session
        self.renderer = renderer
        self.throttle = throttle
        self.artifacts_dir = artifacts_dir
        self.max_chars = max_chars
        self.overlap = overlap
        self._sleep = sleep
        self._clock = clock

    @property
    def page(self):
        return self.session.page

    def _detector(self):
        return CompletionDetector(self.page, self.profile, self.artifacts_dir, sleep=self._sleep, clock=self._clock)

    # ------------------------------------------------------------------
    # Session
    # ------------------------------------------------------------------
    def open_session(self, force_reconnect=False):
        """Opens (or reuses) the provider tab. Returns ``{"ok": bool, ...}``."""
        if force_reconnect and self.session.is_open:
            self.session.restart()
        page = self.session.active_page(self.profile.base_url)
        if page is None:
            handle = self.session.handle()
            return {"ok": False, "provider": self.provider, "error": handle.last_error or "automation-disabled"}
        dismiss_cookie_banner(page, self.profile.selectors.get("cookieAccept"))
        return {"ok": True, "provider": self.provider}

    def handle_errors(self):
        return self._detector().handle_errors()

    # ------------------------------------------------------------------
    # Dialogue primitives
    # ------------------------------------------------------------------
    def send_prompt(self, prompt):
        """Types ``prompt`` (text or PromptPayload) into the input and sends it."""
        if isinstance(prompt, PromptPayload):
            prompt = self.renderer.render(prompt.purpose, prompt.variables())

        page = self.page
        prompt_input = resolve(page, self.profile.selectors.get("promptInput"))
        if prompt_input is None:
            raise LocatorNotFound("promptInput", self.provider)

        # fill() sets the whole value at once; typing large prompts char by char is too slow
        prompt_input.click()
        prompt_input.fill(prompt)
        human_delay(sleep=self._sleep)

        send_button = first_visible(page, self.profile.selectors.get("sendButton"))
        if send_button is not None and send_button.is_enabled():
            send_button.click()
        else:
            prompt_input.press("Enter")
        logger.debug(f"[{self.provider}] Prompt sent ({len(prompt)} chars)")

    def await_completion(self, timeout=None, stall_heuristics=None):
        return self._detector().await_completion(timeout=timeout, stall_heuristics=stall_heuristics)

    def read_response(self):
        """Text of the last assistant message, ``{"text": ""}`` when none is found."""
        for sel in self.profile.selectors.get("responseMessages"):
            try:
                responses = self.page.locator(sel)
                if responses.count() > 0:
                    text = (responses.last.inner_text() or "").strip()
                    if text:
                        return {"text": text}
            except Exception as e:
                logger.debug(f"[{self.provider}] response lookup '{sel}' failed: {e}")
        return {"text": ""}

    def split_and_chain(self, segments, timeout=None):
        return split_and_chain(self, segments, max_chars=self.max_chars, overlap=self.overlap, timeout=timeout)

    # ------------------------------------------------------------------
    # Composite flows
    # ------------------------------------------------------------------
    def ask(self, prompt, timeout=None):
        """Sends prompt and waits for response.

        Returns ``{"text": ...}`` or ``{"text": "", "error": reason, "requiresUser": bool}``
        when the provider needs the operator. CompletionTimeout propagates.
        """
        opened = self.open_session()
        if not opened["ok"]:
            return {"text": "", "error": opened["error"], "requiresUser": False}

        state = self.handle_errors()
        if not state.recovered:
            return {"text": "", "error": state.reason, "requiresUser": state.requires_user,
                    "artifacts": state.artifacts}

        self.throttle.throttle(self.provider)
        if len(prompt) > self.max_chars:
            logger.info(f"[{self.provider}] Prompt of {len(prompt)} chars, sending in segments")
            return {"text": self.split_and_chain(prompt, timeout=timeout)}

        self.send_prompt(prompt)
        self.await_completion(timeout=timeout)
        return self.read_response()

    def _run(self, payload, parse):
        """Renders, asks and parses. Failures other than a completion timeout become ``error``."""
        try:
            prompt = self.renderer.render(payload.purpose, payload.variables())
            reply = self.ask(prompt)
        except CompletionTimeout:
            raise
        except Exception as e:
            logger.error(f"[{self.provider}] {payload.purpose} failed: {e}")
            return {"error": str(e), "artifacts": self._artifacts(payload.purpose)}
        if reply.get("error"):
            return {"error": reply["error"], "requiresUser": reply.get("requiresUser", False),
                    "artifacts": reply.get("artifacts")}
        return parse(reply["text"])

    def _artifacts(self, purpose):
        try:
            page = self.session.page
        except SessionError:
            return None
        return save_debug_artifact(page, f"{self.provider}_{purpose}", self.artifacts_dir)

    def generate_cover_letter(self, payload):
        return self._run(payload, lambda text: {"text": text})

    def tailor_resume(self, payload):
        def parse(text):
            data = extract_json(text)
            if isinstance(data, dict) and "resume" in data:
                diff = data.get("diff") or []
                return {"resume": data["resume"], "diff": diff if isinstance(diff, list) else [str(diff)]}
            return {"resume": text, "diff": []}
        return self._run(payload, parse)

    def answer_form_question(self, payload):
        def parse(text):
            data = extract_json(text)
            if isinstance(data, dict) and "answer" in data:
                return {"answer": str(data["answer"]), "needsUserApproval": bool(data.get("needsUserApproval", False))}
            return {"answer": text, "needsUserApproval": True}
        return self._run(payload, parse)

    def ask_for_missing(self, payload):
        def parse(text):
            data = extract_json(text)
            if isinstance(data, dict) and isinstance(data.get("questions"), list):
                return {"questions": data["questions"][:3]}
            lines = [line.strip("-• ").strip() for line in text.splitlines() if line.strip().endswith("?")]
            return {"questions": [{"q": line, "options": []} for line in lines[:3]]}
        return self._run(payload, parse)

    def test_session(self):
        """Round-trips a tiny prompt to check login state and completion detection."""
        try:
            reply = self.ask(self.renderer.render("session_check"), timeout=60)
        except Exception as e:
            logger.warning(f"[{self.provider}] Session test failed: {e}")
            return {"ok": False, "provider": self.provider, "sample": "", "error": str(e)}
        if reply.get("error"):
            return {"ok": False, "provider": self.provider, "sample": "", "error": reply["error"]}
        return {"ok": bool(reply["text"]), "provider": self.provider, "sample": reply["text"][:200]}

    def close(self):
        self.session.dispose()
