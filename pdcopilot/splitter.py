import re

from .models import GenerationResult
from .prompts import EXPLANATION_MARKER, PATCH_MARKER

_FENCE_RE = re.compile(r"\n?```[\w-]*[ \t]*\n?")


def strip_fences(text: str) -> str:
    return _FENCE_RE.sub("", text)


def split_sections(raw: str) -> tuple[str, str, str]:
    """Return (preamble, patch body, explanation); missing markers yield empty strings."""
    raw = raw or ""
    if PATCH_MARKER in raw:
        preamble, _, rest = raw.partition(PATCH_MARKER)
    else:
        preamble, rest = raw, ""

    if EXPLANATION_MARKER in rest:
        body, _, explanation = rest.partition(EXPLANATION_MARKER)
    elif EXPLANATION_MARKER in preamble:
        preamble, _, explanation = preamble.partition(EXPLANATION_MARKER)
        body = rest
    else:
        body, explanation = rest, ""
    return preamble, body, explanation


def split_completion(raw: str) -> GenerationResult:
    _, body, explanation = split_sections(raw)
    return GenerationResult(
        patch_body=strip_fences(body).strip(),
        explanation=explanation.strip(),
    )
