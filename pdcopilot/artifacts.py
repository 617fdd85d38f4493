import json
import logging
import os
from pathlib import Path
from tempfile import NamedTemporaryFile
from typing import Any

from .models import Patch

logger = logging.getLogger(__name__)

STORAGE_FILENAME = "storage.json"
HISTORY_KEY = "pd_patch_history"
API_KEY_KEY = "anthropic_api_key"
PATCH_EXTENSION = ".pd"


class StorageError(RuntimeError):
    def __init__(self, path: Path, error: str):
        super().__init__(f"Storage failure at {path}: {error}")
        self.path = path
        self.error = error


def _atomic_write(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with NamedTemporaryFile("w", encoding="utf-8", dir=path.parent, delete=False, newline="") as tmp_file:
        tmp_file.write(content)
        tmp_path = Path(tmp_file.name)
    os.replace(tmp_path, path)


class KeyValueStore:
    """Whole-document JSON key-value storage; every write rewrites the file."""

    def __init__(self, path: Path):
        self.path = Path(path)

    @classmethod
    def in_dir(cls, data_dir: Path) -> "KeyValueStore":
        return cls(Path(data_dir) / STORAGE_FILENAME)

    def _read(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise StorageError(self.path, str(e)) from e
        if not isinstance(data, dict):
            raise StorageError(self.path, "top-level value must be an object")
        return data

    def _write(self, data: dict[str, Any]) -> None:
        payload = json.dumps(data, separators=(",", ":"), sort_keys=True, ensure_ascii=False)
        try:
            _atomic_write(self.path, payload)
        except OSError as e:
            raise StorageError(self.path, str(e)) from e

    def get(self, key: str, default: Any = None) -> Any:
        return self._read().get(key, default)

    def set(self, key: str, value: Any) -> None:
        data = self._read()
        data[key] = value
        self._write(data)
        logger.debug("Wrote key %s to %s", key, self.path)

    def remove(self, key: str) -> None:
        data = self._read()
        if key in data:
            del data[key]
            self._write(data)


def export_patch(patch: Patch, out_dir: Path | str = ".") -> Path:
    out_path = Path(out_dir) / f"{patch.name}{PATCH_EXTENSION}"
    out_path.parent.mkdir(parents=True, exist_ok=True)
    out_path.write_bytes(patch.content.encode("utf-8"))
    logger.info("Exported %s to %s", patch.name, out_path)
    return out_path
