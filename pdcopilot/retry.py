import logging
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional

from .composer import compose_request
from .llm import CompletionClient
from .models import GenerationRequest, GenerationResult
from .prompts import MISSING_COMPONENTS_TEMPLATE
from .splitter import split_completion
from .validator import Predicate, ValidationReport, validate_patch

logger = logging.getLogger(__name__)

MAX_ATTEMPT = 2


class RetryState(str, Enum):
    ATTEMPTING = "attempting"
    REPAIRING = "repairing"
    DONE = "done"


@dataclass(frozen=True)
class GenerationOutcome:
    result: GenerationResult
    report: ValidationReport
    attempts: int

    @property
    def failed(self) -> List[Predicate]:
        return self.report.failed()

    @property
    def validation_incomplete(self) -> bool:
        return not self.report.passed


def missing_components_feedback(failed: List[Predicate]) -> str:
    return MISSING_COMPONENTS_TEMPLATE.format(missing=", ".join(p.label for p in failed))


def run_attempt(request: GenerationRequest, client: CompletionClient) -> GenerationResult:
    turns = compose_request(request.prompt, request.feedback)
    raw = client.complete(turns)
    return split_completion(raw)


def generate_patch(prompt: str, client: CompletionClient) -> GenerationOutcome:
    """Run attempts until every predicate passes or MAX_ATTEMPT is reached.

    Completion errors abort the loop and propagate unchanged. Exhausting the
    attempts is not an error: the last result is returned with
    ``validation_incomplete`` set.
    """
    request = GenerationRequest(prompt=prompt, feedback=None, attempt=0)
    state = RetryState.ATTEMPTING
    outcome: Optional[GenerationOutcome] = None

    while state is not RetryState.DONE:
        if state is RetryState.ATTEMPTING:
            result = run_attempt(request, client)
            report = validate_patch(result.patch_body)
            outcome = GenerationOutcome(result=result, report=report, attempts=request.attempt + 1)
            if report.passed:
                logger.info("Patch validated on attempt %d", outcome.attempts)
                state = RetryState.DONE
            elif request.attempt < MAX_ATTEMPT:
                state = RetryState.REPAIRING
            else:
                logger.warning(
                    "Validation incomplete after %d attempts: %s",
                    outcome.attempts,
                    ", ".join(p.label for p in report.failed()),
                )
                state = RetryState.DONE
        else:
            failed = outcome.report.failed()
            logger.warning(
                "Retry %d: Missing components: %s",
                request.attempt + 1,
                ", ".join(p.label for p in failed),
            )
            request = GenerationRequest(
                prompt=prompt,
                feedback=missing_components_feedback(failed),
                attempt=request.attempt + 1,
            )
            state = RetryState.ATTEMPTING

    return outcome
