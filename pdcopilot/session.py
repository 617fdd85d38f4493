import logging
import time
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation

from .composer import compose_request
from .llm import CompletionClient, CompletionError
from .models import AudioChainFlags, ErrorHistoryEntry, Patch, PatchMetadata, RegeneratedPatch, utc_now
from .retry import GenerationOutcome, generate_patch
from .splitter import split_completion
from .store import RevisionStore
from .validator import ValidationReport, validate_patch

logger = logging.getLogger(__name__)

INITIAL_VERSION = "1.0"


@dataclass(frozen=True)
class CreateResult:
    patch: Patch
    outcome: GenerationOutcome


@dataclass(frozen=True)
class RegenerateResult:
    source: Patch
    patch: Patch
    report: ValidationReport


def make_patch_name(store: RevisionStore | None = None) -> str:
    name = f"patch_{time.time_ns() // 1_000_000}"
    if store is None:
        return name
    taken = {patch.name for patch in store.list()}
    candidate, suffix = name, 1
    while candidate in taken:
        candidate = f"{name}_{suffix}"
        suffix += 1
    return candidate


def next_version(version: str) -> str:
    try:
        return str(Decimal(version) + Decimal("0.1"))
    except InvalidOperation:
        return f"{version}.1"


def build_metadata(report: ValidationReport) -> PatchMetadata:
    return PatchMetadata(
        audio_chain=AudioChainFlags(
            has_start_toggle=report.has_start_toggle,
            has_dac=report.has_dac,
            has_volume_control=report.has_volume_control,
            has_vu_meter=report.has_vu_meter,
            has_instructions=report.has_instructions,
        )
    )


def create_patch(prompt: str, client: CompletionClient, store: RevisionStore) -> CreateResult:
    outcome = generate_patch(prompt, client)
    patch = Patch(
        name=make_patch_name(store),
        content=outcome.result.patch_body,
        explanation=outcome.result.explanation,
        description=prompt.strip(),
        version=INITIAL_VERSION,
        metadata=build_metadata(outcome.report),
    )
    store.add(patch)
    return CreateResult(patch=patch, outcome=outcome)


def regenerate_patch(
    name: str,
    error_text: str,
    client: CompletionClient,
    store: RevisionStore,
) -> RegenerateResult:
    """Repair a stored patch from user-reported error text.

    The source patch keeps its content. A successful repair is stored as a
    new patch version and linked from the source's error history; a failed
    completion is still recorded, without a regenerated patch, before the
    error propagates.
    """
    if not error_text or not error_text.strip():
        raise ValueError("error text must not be blank")
    source = store.get(name)

    try:
        raw = client.complete(compose_request(source.description, error_text))
    except CompletionError:
        store.append_error(name, ErrorHistoryEntry(error=error_text))
        raise

    result = split_completion(raw)
    report = validate_patch(result.patch_body)
    patch = Patch(
        name=make_patch_name(store),
        content=result.patch_body,
        explanation=result.explanation,
        description=source.description,
        version=next_version(source.version),
        metadata=build_metadata(report),
        parent=source.name,
    )
    entry = ErrorHistoryEntry(
        error=error_text,
        timestamp=utc_now(),
        regenerated_patch=RegeneratedPatch(
            content=patch.content,
            explanation=patch.explanation,
            timestamp=patch.created,
            patch_name=patch.name,
        ),
    )
    source = store.record_regeneration(name, entry, patch)
    logger.info("Regenerated %s as %s (version %s)", name, patch.name, patch.version)
    return RegenerateResult(source=source, patch=patch, report=report)
