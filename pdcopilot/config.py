import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field

ENV_PREFIX = "PDCOPILOT"
DEFAULT_DATA_DIR = Path.home() / ".pdcopilot"


class Settings(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    model: str = Field("claude-opus-4-6", min_length=1)
    max_tokens: int = Field(2000, gt=0)
    temperature: float = Field(0.7, ge=0.0, le=1.0)
    timeout: float = Field(30.0, gt=0)
    data_dir: Path = DEFAULT_DATA_DIR


_ENV_FIELDS = {
    "model": f"{ENV_PREFIX}_MODEL",
    "max_tokens": f"{ENV_PREFIX}_MAX_TOKENS",
    "temperature": f"{ENV_PREFIX}_TEMPERATURE",
    "timeout": f"{ENV_PREFIX}_TIMEOUT",
    "data_dir": f"{ENV_PREFIX}_DATA_DIR",
}


def load_settings(**overrides) -> Settings:
    load_dotenv()
    values = {}
    for field, env_name in _ENV_FIELDS.items():
        raw = os.getenv(env_name)
        if raw:
            values[field] = raw
    if "data_dir" in values:
        values["data_dir"] = Path(values["data_dir"]).expanduser()
    values.update({key: value for key, value in overrides.items() if value is not None})
    return Settings.model_validate(values)
