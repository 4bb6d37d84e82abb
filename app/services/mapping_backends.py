"""
Load/save backends for mapping images.

A backend holds one store's whole image as a flat JSON object:

- JsonFileBackend: one document on local disk. Writes go to a temp file in
  the same directory and are swapped in with os.replace, so a crash
  mid-write leaves the previous image intact.
- RedisBackend: one JSON string under a single Redis key, shared by every
  process instance where local disk is ephemeral.

Both raise on unreadable or corrupt images so the store can keep its last
good copy.
"""
import json
import os
import tempfile
from pathlib import Path

import redis


class JsonFileBackend:
    """Load/save a whole mapping image as one JSON document."""

    def __init__(self, path: Path):
        self.path = Path(path)

    def load(self) -> dict:
        """
        Read the full image.

        A missing file is an empty image. Unreadable or corrupt files raise
        (OSError / ValueError).
        """
        if not self.path.exists():
            return {}
        data = json.loads(self.path.read_text(encoding="utf-8"))
        if not isinstance(data, dict):
            raise ValueError(f"Mapping file {self.path} does not hold a JSON object")
        return data

    def save(self, image: dict) -> None:
        """Atomically replace the file with the given image."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            dir=str(self.path.parent), prefix=f".{self.path.name}.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(image, fh, indent=2, ensure_ascii=False)
            os.replace(tmp_name, self.path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise

    def __repr__(self) -> str:
        return f"JsonFileBackend({str(self.path)!r})"


class RedisBackend:
    """Keep a whole mapping image as one JSON string under a single Redis key."""

    def __init__(self, client: redis.Redis, key: str):
        self.client = client
        self.key = key

    def load(self) -> dict:
        raw = self.client.get(self.key)
        if not raw:
            return {}
        data = json.loads(raw)
        if not isinstance(data, dict):
            raise ValueError(f"Redis key {self.key} does not hold a JSON object")
        return data

    def save(self, image: dict) -> None:
        self.client.set(self.key, json.dumps(image, ensure_ascii=False))

    def __repr__(self) -> str:
        return f"RedisBackend({self.key!r})"
