from datetime import datetime, timezone
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Turn(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    role: Literal["system", "user"]
    content: str


class GenerationRequest(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    prompt: str = Field(..., min_length=1)
    feedback: Optional[str] = None
    attempt: int = Field(0, ge=0, le=2)


class GenerationResult(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    patch_body: str = ""
    explanation: str = ""


class AudioChainFlags(BaseModel):
    model_config = ConfigDict(extra="forbid", alias_generator=to_camel, populate_by_name=True)

    has_start_toggle: bool = True
    has_dac: bool = True
    has_volume_control: bool = True
    has_vu_meter: bool = True
    has_instructions: bool = True


DEFAULT_REQUIRED_OBJECTS = [
    "loadbang",
    "tgl",
    "metro",
    "osc~",
    "dac~",
    "*~",
    "clip~",
    "vu",
    "cnv",
]


class PatchMetadata(BaseModel):
    model_config = ConfigDict(extra="forbid", alias_generator=to_camel, populate_by_name=True)

    width: int = 520
    height: int = 400
    audio_enabled: bool = True
    control_rate: bool = True
    required_objects: List[str] = Field(default_factory=lambda: list(DEFAULT_REQUIRED_OBJECTS))
    audio_chain: AudioChainFlags = Field(default_factory=AudioChainFlags)


class RegeneratedPatch(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True, alias_generator=to_camel, populate_by_name=True)

    content: str
    explanation: str
    timestamp: datetime = Field(default_factory=utc_now)
    patch_name: Optional[str] = None


class ErrorHistoryEntry(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True, alias_generator=to_camel, populate_by_name=True)

    error: str = Field(..., min_length=1)
    timestamp: datetime = Field(default_factory=utc_now)
    regenerated_patch: Optional[RegeneratedPatch] = None

    @field_validator("error")
    @classmethod
    def error_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("error text must not be blank")
        return value


class Patch(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True, alias_generator=to_camel, populate_by_name=True)

    name: str = Field(..., min_length=1)
    content: str
    explanation: str
    description: str
    created: datetime = Field(default_factory=utc_now)
    version: str = "1.0"
    metadata: PatchMetadata = Field(default_factory=PatchMetadata)
    error_history: List[ErrorHistoryEntry] = Field(default_factory=list)
    parent: Optional[str] = None

