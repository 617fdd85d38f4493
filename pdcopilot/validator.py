import re
from enum import Enum
from typing import ClassVar, Dict, List

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

SAFE_GAINS = (0.5, 0.25, 0.1)
MIN_PROPER_CONNECTIONS = 6

_TOGGLE_RE = re.compile(r"\btgl\b[^;]*\bSTART\b")
_DAC_RE = re.compile(r"\bdac~")
_GAIN_RE = re.compile(r"\*~[ \t]+(-?\d*\.?\d+)(?![\d.])")
_VU_RE = re.compile(r"#X obj -?\d+ -?\d+ vu\b")
_CANVAS_RE = re.compile(r"\bcnv\b")
_TEXT_RE = re.compile(r"#X text\b")
_LOADBANG_RE = re.compile(r"\bloadbang\b")
_METRO_RE = re.compile(r"\bmetro\b")
_SOURCE_RE = re.compile(r"(?<![\w~])(?:osc~|phasor~|noise~)")
_CLIP_RE = re.compile(r"\bclip~")
_CONNECT_RE = re.compile(r"#X connect \d+ \d+")


class Predicate(str, Enum):
    """Structural checks, in report order."""

    START_TOGGLE = "hasStartToggle"
    DAC = "hasDac"
    VOLUME_CONTROL = "hasVolumeControl"
    VU_METER = "hasVuMeter"
    INSTRUCTIONS = "hasInstructions"
    LOAD_BANG = "hasLoadBang"
    METRO = "hasMetro"
    CONNECTIONS = "hasConnections"
    AUDIO_CHAIN = "hasAudioChain"
    PROPER_CONNECTIONS = "hasProperConnections"

    @property
    def label(self) -> str:
        return self.value[len("has"):]


class ValidationReport(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True, alias_generator=to_camel, populate_by_name=True)

    checklist_version: ClassVar[str] = "pd-checklist.v1"

    has_start_toggle: bool
    has_dac: bool
    has_volume_control: bool
    has_vu_meter: bool
    has_instructions: bool
    has_load_bang: bool
    has_metro: bool
    has_connections: bool
    has_audio_chain: bool
    has_proper_connections: bool

    def as_dict(self) -> Dict[str, bool]:
        return self.model_dump(by_alias=True)

    def __getitem__(self, predicate: Predicate) -> bool:
        return self.as_dict()[Predicate(predicate).value]

    def failed(self) -> List[Predicate]:
        values = self.as_dict()
        return [predicate for predicate in Predicate if not values[predicate.value]]

    @property
    def passed(self) -> bool:
        return not self.failed()


def has_safe_volume(body: str) -> bool:
    for match in _GAIN_RE.finditer(body):
        try:
            gain = float(match.group(1))
        except ValueError:
            continue
        if any(abs(gain - safe) < 1e-9 for safe in SAFE_GAINS):
            return True
    return False


def count_connections(body: str) -> int:
    return len(_CONNECT_RE.findall(body))


def has_audio_chain(body: str) -> bool:
    return (
        bool(_SOURCE_RE.search(body))
        and "*~" in body
        and bool(_CLIP_RE.search(body))
        and bool(_DAC_RE.search(body))
    )


def validate_patch(body: str) -> ValidationReport:
    body = body or ""
    connections = count_connections(body)
    return ValidationReport(
        has_start_toggle=bool(_TOGGLE_RE.search(body)),
        has_dac=bool(_DAC_RE.search(body)),
        has_volume_control=has_safe_volume(body),
        has_vu_meter=bool(_VU_RE.search(body)),
        has_instructions=bool(_CANVAS_RE.search(body)) and bool(_TEXT_RE.search(body)),
        has_load_bang=bool(_LOADBANG_RE.search(body)),
        has_metro=bool(_METRO_RE.search(body)),
        has_connections=connections > 0,
        has_audio_chain=has_audio_chain(body),
        has_proper_connections=connections >= MIN_PROPER_CONNECTIONS,
    )
