"""Heuristic filling of application-form questions from a stored answer source."""
import re
import unicodedata

from browser_tools.human_actions import type_human
from browser_tools.logger import get_logger

logger = get_logger("FormFiller")

QUESTION_KEY_MAX_LEN = 160

DEFAULT_CONTAINER_SELECTORS = (
    ".fb-dash-form-element",
    ".jobs-easy-apply-form-section__grouping",
    ".jobs-easy-apply-form-element",
    "fieldset",
    ".form-group",
    ".application-question",
    "[data-question]",
)

DEFAULT_LABEL_SELECTORS = (
    "label",
    "legend",
    ".fb-dash-form-element__label",
    ".jobs-easy-apply-form-element__label",
    "[data-test-form-element-label]",
    "span.t-bold",
    "h3",
)

TEXT_INPUT_SELECTOR = (
    "input[type='text'], input[type='email'], input[type='tel'], input[type='number'], "
    "input[type='url'], input:not([type]), textarea"
)
SELECT_SELECTOR = "select"
RADIO_SELECTOR = "input[type='radio']"
CHECKBOX_SELECTOR = "input[type='checkbox']"

TRUTHY_ANSWERS = ("true", "yes")

_NON_WORD = re.compile(r"[^\w\s]")
_WHITESPACE = re.compile(r"\s+")


def normalize_question_key(text):
    """Deterministic lookup key for a question label.

    "Notice period?" -> "notice_period". Keeps letters (diacritics included),
    digits and underscores, so applying it twice changes nothing.
    """
    text = unicodedata.normalize("NFC", str(text or "")).casefold()
    text = _NON_WORD.sub("", text).strip()
    text = _WHITESPACE.sub("_", text)
    return text[:QUESTION_KEY_MAX_LEN]


def _lookup(answer_source, key, raw_text):
    answer = answer_source.lookup(key)
    if answer is None or answer == "":
        answer = answer_source.lookup(raw_text)
    return answer


def _label_text(container, label_selectors):
    for sel in label_selectors:
        try:
            label = container.locator(sel).first
            if label.count() == 0:
                continue
            text = (label.inner_text() or "").strip()
            if text:
                return text
        except Exception as e:
            logger.debug(f"Label lookup '{sel}' failed: {e}")
    return ""


def _option_label(container, option):
    option_id = option.get_attribute("id")
    if option_id:
        label = container.locator(f"label[for='{option_id}']").first
        if label.count() > 0:
            return (label.inner_text() or "").strip()
    aria = option.get_attribute("aria-label")
    if aria:
        return aria.strip()
    parent = option.locator("xpath=..")
    return (parent.inner_text() or "").strip()


def fill_text(field, answer):
    type_human(field, answer)
    return True


def fill_select(field, answer):
    try:
        field.select_option(label=str(answer))
        return True
    except Exception as e:
        logger.debug(f"Select by label failed, trying value: {e}")
    field.select_option(value=str(answer))
    return True


def fill_radio(container, radios, answer):
    wanted = str(answer).strip().casefold()
    for index in range(radios.count()):
        radio = radios.nth(index)
        label = _option_label(container, radio).casefold()
        if label and wanted in label:
            radio.click()
            return True
    return False


def fill_checkbox(checkboxes, answer):
    desired = answer is True or str(answer).strip().lower() in TRUTHY_ANSWERS
    for index in range(checkboxes.count()):
        box = checkboxes.nth(index)
        if box.is_checked() != desired:
            box.click()
    return True


def _apply_answer(container, answer):
    text_field = container.locator(TEXT_INPUT_SELECTOR)
    if text_field.count() > 0:
        return fill_text(text_field.first, answer)

    select = container.locator(SELECT_SELECTOR)
    if select.count() > 0:
        return fill_select(select.first, answer)

    radios = container.locator(RADIO_SELECTOR)
    if radios.count() > 0:
        return fill_radio(container, radios, answer)

    checkboxes = container.locator(CHECKBOX_SELECTOR)
    if checkboxes.count() > 0:
        return fill_checkbox(checkboxes, answer)

    return False


def _containers(page, container_selectors):
    for sel in container_selectors:
        try:
            found = page.locator(sel)
            if found.count() > 0:
                return found.all()
        except Exception as e:
            logger.debug(f"Container lookup '{sel}' failed: {e}")
    return []


def auto_fill_questions(page, answer_source, steps, errors, catalog=None, on_unknown=None):
    """Answers every recognised question on the current form page.

    Appends ``answer:<key>`` to ``steps`` for each filled field and
    ``{"field": key, "reason": "answer-apply-failed"}`` to ``errors`` for each
    field that had an answer but could not be filled. Questions without a stored
    answer are skipped (and reported to ``on_unknown`` when given). Never raises.
    Returns the number of filled fields.
    """
    container_selectors = (catalog.get("questionContainers") if catalog else ()) or DEFAULT_CONTAINER_SELECTORS
    label_selectors = (catalog.get("questionLabels") if catalog else ()) or DEFAULT_LABEL_SELECTORS

    filled = 0
    try:
        containers = _containers(page, container_selectors)
    except Exception as e:
        logger.warning(f"Could not discover question containers: {e}")
        return filled

    for container in containers:
        label_text = _label_text(container, label_selectors)
        if not label_text:
            continue
        key = normalize_question_key(label_text)

        try:
            answer = _lookup(answer_source, key, label_text)
        except Exception as e:
            logger.warning(f"Answer lookup failed for '{label_text}': {e}")
            answer = None

        if answer is None or answer == "":
            logger.debug(f"No stored answer for '{label_text}'")
            if on_unknown is not None:
                try:
                    on_unknown(label_text)
                except Exception as e:
                    logger.debug(f"Unknown-question hook failed: {e}")
            continue

        try:
            ok = _apply_answer(container, answer)
        except Exception as e:
            logger.debug(f"Filling '{label_text}' raised: {e}")
            ok = False

        if ok:
            steps.append(f"answer:{key}")
            filled += 1
            logger.info(f"Answered '{label_text}' → '{answer}'")
        else:
            errors.append({"field": key, "reason": "answer-apply-failed"})
            logger.warning(f"Could not apply answer for '{label_text}'")

    return filled
