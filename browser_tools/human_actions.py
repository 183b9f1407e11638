import time
import random
from tenacity import Retrying, stop_after_attempt, wait_incrementing
from browser_tools.locators import first_visible
from browser_tools.logger import logger


def human_delay(min_ms=200, max_ms=750, sleep=None):
    """Waits a uniformly sampled number of milliseconds between actions."""
    sleep = sleep or time.sleep
    delay_ms = random.uniform(min_ms, max_ms)
    sleep(delay_ms / 1000)
    return delay_ms


def jitter_mouse(page):
    """Slightly moves the mouse to simulate human presence."""
    try:
        viewport = page.viewport_size or {"width": 1280, "height": 800}
        x = viewport["width"] / 2 + random.randint(-5, 5)
        y = viewport["height"] / 2 + random.randint(-5, 5)
        page.mouse.move(x, y, steps=random.randint(2, 5))
        logger.debug(f"Mouse jittered to ({x:.0f}, {y:.0f})")
    except Exception as e:
        logger.debug(f"Failed to jitter mouse: {e}")


def human_scroll(page, min_px=400, max_px=600, sleep=None):
    """Scrolls the page by a variable amount, then pauses like a reader would."""
    try:
        delta = random.randint(min_px, max_px)
        page.mouse.wheel(0, delta)
        logger.debug(f"Human scrolled by {delta}px")
    except Exception as e:
        logger.debug(f"Failed to scroll human-like: {e}")
    human_delay(sleep=sleep)


def type_human(locator, text, min_ms=50, max_ms=150, sleep=None):
    """Clicks, clears, then types ``text`` one character at a time with jittered delays."""
    sleep = sleep or time.sleep
    locator.click()
    locator.fill("")
    for char in str(text):
        locator.press_sequentially(char)
        sleep(random.uniform(min_ms, max_ms) / 1000)
    logger.debug(f"Typed {len(str(text))} chars human-like")


def with_retry(fn, attempts=3, sleep=None):
    """Calls ``fn`` up to ``attempts`` times, backing off 500ms * attempt between tries.

    Re-raises the last error once attempts are exhausted.
    """
    retrying = Retrying(
        stop=stop_after_attempt(attempts),
        wait=wait_incrementing(start=0.5, increment=0.5),
        sleep=sleep or time.sleep,
        reraise=True,
    )
    return retrying(fn)


def dismiss_cookie_banner(page, candidates):
    """Clicks the first visible 'Accept' button of a cookie banner, if any."""
    button = first_visible(page, candidates)
    if button is None:
        return False
    try:
        button.click()
        logger.info("🍪 Cookie banner handled")
        return True
    except Exception as e:
        logger.debug(f"Cookie banner click failed: {e}")
        return False
