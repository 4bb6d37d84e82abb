"""
Durable product -> course mapping stores.

Three independent key/value stores share one shape:

- product_courses:   Shopify product id -> LearnWorlds course id
- bundle_components: bundle product id -> list of component product ids
- bundle_names:      normalized bundle name -> LearnWorlds course id

Each store persists its whole image on every write and reloads it on every
read, so edits made by another worker or instance show up without a restart.
Persistence failures are logged, never raised. The mutation stays pending in
this process until the next successful save writes it out; reads lay pending
changes over the fresh image.
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Protocol

from fastapi.concurrency import run_in_threadpool

from app.config import Settings
from app.errors import MappingValidationError
from app.services.mapping_backends import JsonFileBackend, RedisBackend

logger = logging.getLogger(__name__)

PRODUCT_COURSES = "product_courses"
BUNDLE_COMPONENTS = "bundle_components"
BUNDLE_NAMES = "bundle_names"

_FILE_NAMES = {
    PRODUCT_COURSES: "product_course_mapping.json",
    BUNDLE_COMPONENTS: "bundle_components.json",
    BUNDLE_NAMES: "bundle_name_mapping.json",
}

REDIS_KEY_PREFIX = "learnbridge:mappings:"

_REMOVED = object()


class MappingBackend(Protocol):
    def load(self) -> dict: ...

    def save(self, image: dict) -> None: ...


def normalize_product_id(value: Any) -> str:
    """Shopify sends numeric ids; stores key everything by string."""
    if value is None:
        return ""
    return str(value).strip()


def normalize_bundle_name(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip().casefold()


def _require_text(value: Any, field: str) -> str:
    if value is None or not str(value).strip():
        raise MappingValidationError(f"Missing required field: {field}")
    return str(value).strip()


def _require_id_list(value: Any, field: str) -> List[str]:
    if not isinstance(value, (list, tuple)):
        raise MappingValidationError(f"Missing or invalid required field: {field}")
    return [_require_text(item, field) for item in value]


class MappingStore:
    """One named key/value store over a load/save backend."""

    def __init__(
        self,
        name: str,
        backend: MappingBackend,
        normalize_key: Callable[[Any], str] = normalize_product_id,
        validate_value: Callable[[Any, str], Any] = _require_text,
    ):
        self.name = name
        self.backend = backend
        self._normalize_key = normalize_key
        self._validate_value = validate_value
        self._image: Dict[str, Any] = {}
        # Local writes that have not reached the backend yet; _REMOVED marks a deletion
        self._pending: Dict[str, Any] = {}
        self._write_lock = asyncio.Lock()

    @property
    def has_unsaved_changes(self) -> bool:
        return bool(self._pending)

    async def reload(self) -> Dict[str, Any]:
        """
        Refresh the in-memory image from the backend and return a copy.

        Local writes that failed to persist are applied on top of the fresh
        image, so this process keeps seeing them alongside edits made
        elsewhere. A failed load keeps the last good image.
        """
        try:
            image = await run_in_threadpool(self.backend.load)
        except Exception as e:
            logger.error("Failed to load %s mapping from %r: %s", self.name, self.backend, e)
            return dict(self._image)
        image = dict(image)
        for key, value in self._pending.items():
            if value is _REMOVED:
                image.pop(key, None)
            else:
                image[key] = value
        self._image = image
        return dict(self._image)

    async def get(self, key: Any) -> Optional[Any]:
        """Value for key, or None. Never raises."""
        normalized = self._normalize_key(key)
        if not normalized:
            return None
        image = await self.reload()
        return image.get(normalized)

    async def set(self, key: Any, value: Any) -> bool:
        """
        Overwrite the value for key and persist the whole image.

        Raises MappingValidationError for an empty key or value, before any
        side effect. Returns whether the image reached the backend.
        """
        normalized = self._normalize_key(key)
        if not normalized:
            raise MappingValidationError(f"Missing required key for {self.name} mapping")
        clean_value = self._validate_value(value, "value")

        async with self._write_lock:
            await self.reload()
            self._image[normalized] = clean_value
            persisted = await self._persist(normalized, clean_value)

        logger.info("Set %s mapping %s -> %s", self.name, normalized, clean_value)
        return persisted

    async def remove(self, key: Any) -> bool:
        """Delete key (no-op when absent) and persist the whole image."""
        normalized = self._normalize_key(key)
        async with self._write_lock:
            await self.reload()
            self._image.pop(normalized, None)
            persisted = await self._persist(normalized, _REMOVED)

        logger.info("Removed %s mapping %s", self.name, normalized)
        return persisted

    async def list(self) -> Dict[str, Any]:
        """All key/value pairs, freshly reloaded."""
        return await self.reload()

    async def _persist(self, key: str, value: Any) -> bool:
        snapshot = dict(self._image)
        try:
            await run_in_threadpool(self.backend.save, snapshot)
        except Exception as e:
            self._pending[key] = value
            logger.error(
                "Failed to save %s mapping to %r (change kept in memory only): %s",
                self.name, self.backend, e,
            )
            return False
        # The saved image already carries every earlier pending write
        self._pending.clear()
        return True


@dataclass
class MappingStores:
    product_courses: MappingStore
    bundle_components: MappingStore
    bundle_names: MappingStore

    @classmethod
    def from_backends(
        cls,
        product_courses: MappingBackend,
        bundle_components: MappingBackend,
        bundle_names: MappingBackend,
    ) -> "MappingStores":
        return cls(
            product_courses=MappingStore(PRODUCT_COURSES, product_courses),
            bundle_components=MappingStore(
                BUNDLE_COMPONENTS, bundle_components, validate_value=_require_id_list
            ),
            bundle_names=MappingStore(
                BUNDLE_NAMES, bundle_names, normalize_key=normalize_bundle_name
            ),
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "MappingStores":
        if settings.mapping_backend == "redis":
            from app.redis_client import get_redis_client

            client = get_redis_client()
            backends = {name: RedisBackend(client, REDIS_KEY_PREFIX + name) for name in _FILE_NAMES}
        else:
            data_dir = settings.mapping_dir
            backends = {name: JsonFileBackend(data_dir / file_name) for name, file_name in _FILE_NAMES.items()}

        logger.info("Mapping stores using %s backend", settings.mapping_backend)
        return cls.from_backends(**backends)
