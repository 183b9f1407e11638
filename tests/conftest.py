from unittest.mock import MagicMock

import pytest

from browser_tools.site_profile import AntiStallConfig, SelectorCatalog, SiteProfile


class FakeElement:
    """One DOM node: visibility, text, attributes and nested nodes by selector."""

    def __init__(self, text="", visible=True, attrs=None, children=None, checked=False, enabled=True,
                 options=None, parent=None):
        self.text = text
        self.visible = visible
        self.attrs = dict(attrs or {})
        self.children = dict(children or {})
        self.checked = checked
        self.enabled = enabled
        self.options = list(options or [])
        self.parent = parent
        self.value = ""
        self.clicks = 0
        self.pressed = []
        self.selected = None
        self.files = None

    def click(self, **kwargs):
        self.clicks += 1
        if self.attrs.get("type") == "checkbox":
            self.checked = not self.checked
        elif self.attrs.get("type") == "radio":
            self.checked = True


class FakeLocator:
    def __init__(self, elements):
        self.elements = list(elements)

    def _one(self):
        if not self.elements:
            raise TimeoutError("locator resolved to no element")
        return self.elements[0]

    # --- querying ---
    def count(self):
        return len(self.elements)

    @property
    def first(self):
        return FakeLocator(self.elements[:1])

    @property
    def last(self):
        return FakeLocator(self.elements[-1:])

    def nth(self, index):
        return FakeLocator(self.elements[index:index + 1])

    def all(self):
        return [FakeLocator([el]) for el in self.elements]

    def locator(self, selector):
        if selector == "xpath=..":
            return FakeLocator([el.parent for el in self.elements if el.parent is not None])
        found = []
        for el in self.elements:
            found.extend(el.children.get(selector, []))
        return FakeLocator(found)

    # --- state ---
    def is_visible(self):
        return bool(self.elements) and self.elements[0].visible

    def is_enabled(self):
        return self._one().enabled

    def is_checked(self):
        return self._one().checked

    def inner_text(self):
        return self._one().text

    def get_attribute(self, name):
        return self._one().attrs.get(name)

    # --- actions ---
    def click(self, **kwargs):
        self._one().click(**kwargs)

    def fill(self, value):
        self._one().value = value

    def press_sequentially(self, text):
        self._one().value += text

    def press(self, key):
        self._one().pressed.append(key)

    def select_option(self, label=None, value=None):
        el = self._one()
        wanted = label if label is not None else value
        if wanted not in el.options:
            raise ValueError(f"no option {wanted!r}")
        el.selected = wanted

    def set_input_files(self, path):
        self._one().files = path


class FakePage:
    """Selector -> elements map standing in for a Playwright page."""

    def __init__(self, dom=None, url="https://example.com/", broken=(), goto_error=None):
        self.dom = dict(dom or {})
        self.url = url
        self.broken = set(broken)
        self.goto_error = goto_error
        self.mouse = MagicMock()
        self.viewport_size = {"width": 1280, "height": 800}
        self.closed = False
        self.visited = []

    def locator(self, selector):
        if selector in self.broken:
            raise RuntimeError(f"invalid selector {selector}")
        return FakeLocator(self.dom.get(selector, []))

    def goto(self, url, **kwargs):
        self.visited.append(url)
        if self.goto_error is not None:
            raise self.goto_error
        self.url = url

    def close(self):
        self.closed = True

    def screenshot(self, path=None, full_page=False):
        with open(path, "wb") as f:
            f.write(b"png")

    def content(self):
        return "<html></html>"

    def is_closed(self):
        return self.closed


class FakeClock:
    """Monotonic clock advanced only by the injected sleep."""

    def __init__(self):
        self.now = 0.0
        self.sleeps = []
        self.hooks = []

    def __call__(self):
        return self.now

    def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds
        for hook in list(self.hooks):
            hook(self.now)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def no_sleep(monkeypatch):
    monkeypatch.setattr("browser_tools.human_actions.time.sleep", lambda s: None)


def make_profile(target_id="chatgpt", base_url="https://chat.example.com/", selectors=None, **kwargs):
    return SiteProfile(
        target_id=target_id,
        base_url=base_url,
        selectors=SelectorCatalog(selectors or {}),
        anti_stall=kwargs.pop("anti_stall", AntiStallConfig(stall_after=15.0)),
        **kwargs,
    )


@pytest.fixture
def llm_selectors():
    return {
        "promptInput": ["#prompt-textarea", "textarea"],
        "sendButton": ["button[data-testid='send-button']"],
        "stopButton": ["button[data-testid='stop-button']"],
        "responseMessages": ["div[data-message-author-role='assistant']"],
        "generatingIndicators": [".result-streaming"],
        "typingIndicators": [".typing"],
        "spinnerIndicators": [".spinner"],
        "loginIndicators": ["button[data-testid='login-button']"],
        "captchaIndicators": ["iframe[src*='recaptcha']"],
        "cloudflareIndicators": ["#challenge-form"],
        "cookieAccept": ["button#accept-all"],
    }
