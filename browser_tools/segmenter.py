import re

from browser_tools.logger import get_logger

logger = get_logger("Segmenter")

DEFAULT_MAX_CHARS = 3500
DEFAULT_OVERLAP = 200


def normalize_whitespace(text):
    return re.sub(r"\s+", " ", text or "").strip()


def chunk_text(text, max_chars=DEFAULT_MAX_CHARS, overlap=DEFAULT_OVERLAP):
    """Splits text into windows of at most ``max_chars`` that overlap by ``overlap``.

    Windows start every ``max_chars - overlap`` characters; the last one always
    ends exactly at the end of the (whitespace-normalized) text. The overlapping
    region is not de-duplicated.
    """
    if max_chars <= 0:
        raise ValueError("max_chars must be positive")
    if overlap < 0 or overlap >= max_chars:
        raise ValueError("overlap must be in [0, max_chars)")

    normalized = normalize_whitespace(text)
    length = len(normalized)
    step = max_chars - overlap
    chunks = []
    for start in range(0, length, step):
        end = min(start + max_chars, length)
        chunks.append(normalized[start:end])
    return chunks


def split_and_chain(dialogue, segments, max_chars=DEFAULT_MAX_CHARS, overlap=DEFAULT_OVERLAP, timeout=None):
    """Sends each segment in turn on one conversation and joins the answers.

    ``dialogue`` needs ``send_prompt``, ``await_completion`` and
    ``read_response``. Segments are processed strictly one after another so the
    remote side keeps its conversational context. ``segments`` may also be a
    single string, which is chunked first.
    """
    if isinstance(segments, str):
        segments = chunk_text(segments, max_chars=max_chars, overlap=overlap)

    parts = []
    total = len(segments)
    for index, segment in enumerate(segments, start=1):
        logger.info(f"Sending segment {index}/{total} ({len(segment)} chars)")
        dialogue.send_prompt(segment)
        dialogue.await_completion(timeout=timeout)
        response = dialogue.read_response()
        text = response.get("text", "") if isinstance(response, dict) else (response or "")
        if text.strip():
            parts.append(text)
    return "\n".join(parts)
