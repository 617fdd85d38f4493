from typing import List, Optional

from .models import Turn
from .prompts import (
    EXAMPLE_PATCH,
    EXAMPLE_TEMPLATE,
    EXPLANATION_MARKER,
    FEEDBACK_TEMPLATE,
    PATCH_MARKER,
    SYSTEM_PROMPT,
)


def compose_request(prompt: str, feedback: Optional[str] = None) -> List[Turn]:
    if not prompt or not prompt.strip():
        raise ValueError("prompt must not be blank")

    turns = [
        Turn(role="system", content=SYSTEM_PROMPT.strip()),
        Turn(
            role="system",
            content=EXAMPLE_TEMPLATE.format(
                patch_marker=PATCH_MARKER,
                example=EXAMPLE_PATCH,
                explanation_marker=EXPLANATION_MARKER,
            ).strip(),
        ),
        Turn(role="user", content=prompt.strip()),
    ]
    if feedback:
        turns.append(Turn(role="user", content=FEEDBACK_TEMPLATE.format(feedback=feedback)))
    return turns
