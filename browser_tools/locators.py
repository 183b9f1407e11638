"""Ordered-fallback locator resolution.

Every role in a selector catalog is a list of candidates in priority order.
Callers never assume a candidate is unique, and nothing here retries: a miss is
reported as ``None``/``False`` and the caller decides what to do about it.
"""
from browser_tools.logger import get_logger

logger = get_logger("Locators")


def resolve(page, candidates):
    """Returns the first candidate that exists in the DOM (count > 0), else None.

    Existence decides, not visibility: an earlier hidden match still wins over a
    later visible one.
    """
    for selector in candidates or ():
        try:
            locator = page.locator(selector)
            if locator.count() > 0:
                return locator.first
        except Exception as e:
            logger.debug(f"resolve: '{selector}' failed: {e}")
    return None


def any_visible(page, candidates):
    """True if any candidate resolves to a visible element. Errors count as not visible."""
    return first_visible(page, candidates) is not None


def first_visible(page, candidates):
    """Returns the first candidate locator whose first match is visible, else None."""
    for selector in candidates or ():
        try:
            locator = page.locator(selector).first
            if locator.count() > 0 and locator.is_visible():
                return locator
        except Exception as e:
            logger.debug(f"first_visible: '{selector}' failed: {e}")
    return None
