"""
LearnWorlds REST API client.

Auth: bearer API key, plus the school's client id in the Lw-Client header.
Configuration is handed in as a LearnWorldsConfig; missing credentials only
surface as ConfigurationError when a call is actually made.
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

import httpx

from app.config import Settings
from app.errors import ConfigurationError, UpstreamAPIError

logger = logging.getLogger(__name__)

USERS_PATH = "/v2/users"
# One page is all the fallback scan looks at
FALLBACK_SCAN_LIMIT = 100


@dataclass(frozen=True)
class LearnWorldsConfig:
    api_key: str
    base_url: str
    school_id: str = ""
    timeout_seconds: float = 15.0

    @classmethod
    def from_settings(cls, settings: Settings) -> "LearnWorldsConfig":
        return cls(
            api_key=settings.learnworlds_api_key,
            base_url=settings.learnworlds_api_url,
            school_id=settings.learnworlds_school_id,
            timeout_seconds=settings.http_timeout_seconds,
        )


def _enrollment_path(user_id: str, course_id: str) -> str:
    return f"{USERS_PATH}/{user_id}/courses/{course_id}"


def _match_email(users: Iterable[Dict[str, Any]], email: str) -> Optional[Dict[str, Any]]:
    wanted = email.strip().lower()
    for user in users:
        if not isinstance(user, dict) or not user.get("id"):
            continue
        if str(user.get("email") or "").strip().lower() == wanted:
            return user
    return None


class LearnWorldsClient:
    def __init__(self, config: LearnWorldsConfig, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.config = config
        self._transport = transport

    def _headers(self) -> dict:
        headers = {
            "Authorization": f"Bearer {self.config.api_key}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        if self.config.school_id:
            headers["Lw-Client"] = self.config.school_id
        return headers

    def _check_config(self) -> None:
        if not self.config.base_url:
            raise ConfigurationError("LearnWorlds API URL not configured", context="learnworlds")
        if not self.config.api_key:
            raise ConfigurationError("LearnWorlds API key not configured", context="learnworlds")

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        self._check_config()
        try:
            async with httpx.AsyncClient(
                base_url=self.config.base_url.rstrip("/"),
                timeout=self.config.timeout_seconds,
                transport=self._transport,
            ) as client:
                return await client.request(method, path, headers=self._headers(), **kwargs)
        except httpx.HTTPError as e:
            raise UpstreamAPIError(
                f"LearnWorlds {method} {path} failed: {e}", context="learnworlds"
            ) from e

    @staticmethod
    def _unexpected(resp: httpx.Response, action: str) -> UpstreamAPIError:
        return UpstreamAPIError(
            f"LearnWorlds {action} failed: {resp.text[:200]}",
            status_code=resp.status_code,
            context="learnworlds",
        )

    @staticmethod
    def _json(resp: httpx.Response, action: str) -> Any:
        try:
            return resp.json()
        except ValueError as e:
            raise UpstreamAPIError(
                f"LearnWorlds {action} returned malformed JSON",
                status_code=resp.status_code,
                context="learnworlds",
            ) from e

    def _users_from(self, resp: httpx.Response, action: str) -> List[Dict[str, Any]]:
        body = self._json(resp, action)
        # v2 wraps lists in {"data": [...], "meta": {...}}; older answers are bare lists
        if isinstance(body, dict):
            body = body.get("data") or []
        if not isinstance(body, list):
            raise UpstreamAPIError(
                f"LearnWorlds {action} returned an unexpected body",
                status_code=resp.status_code,
                context="learnworlds",
            )
        return body

    async def _list_users(self, params: dict, action: str) -> List[Dict[str, Any]]:
        resp = await self._request("GET", USERS_PATH, params=params)
        if resp.status_code in (400, 404):
            return []
        if resp.status_code != 200:
            raise self._unexpected(resp, action)
        return self._users_from(resp, action)

    async def find_user_by_email(self, email: str) -> Optional[Dict[str, Any]]:
        """
        Look a user up by email, case-insensitively.

        Tries the filtered endpoint first, then scans one page of users in
        case the filter is not honoured. Returns None when absent.
        """
        users = await self._list_users({"email": email}, "user search")
        user = _match_email(users, email)
        if user:
            logger.debug("Found LearnWorlds user %s for %s", user.get("id"), email)
            return user

        users = await self._list_users({"limit": FALLBACK_SCAN_LIMIT}, "user scan")
        user = _match_email(users, email)
        if user:
            logger.info("Found LearnWorlds user %s for %s via full scan", user.get("id"), email)
            return user

        logger.info("No LearnWorlds user found with email %s", email)
        return None

    async def create_user(self, email: str, first_name: str = "", last_name: str = "") -> Dict[str, Any]:
        resp = await self._request(
            "POST",
            USERS_PATH,
            json={"email": email, "first_name": first_name or "", "last_name": last_name or ""},
        )
        if resp.status_code not in (200, 201):
            raise self._unexpected(resp, "user creation")
        user = self._json(resp, "user creation")
        if not isinstance(user, dict) or not user.get("id"):
            raise UpstreamAPIError(
                "LearnWorlds user creation returned no user id",
                status_code=resp.status_code,
                context="learnworlds",
            )
        logger.info("Created LearnWorlds user %s for %s", user["id"], email)
        return user

    async def create_user_if_not_exists(
        self, email: str, first_name: str = "", last_name: str = ""
    ) -> Dict[str, Any]:
        existing = await self.find_user_by_email(email)
        if existing:
            logger.info("User with email %s already exists in LearnWorlds", email)
            return existing
        return await self.create_user(email, first_name, last_name)

    async def enroll(self, user_id: str, course_id: str) -> None:
        resp = await self._request("POST", _enrollment_path(user_id, course_id), json={})
        if resp.status_code not in (200, 201, 204):
            raise self._unexpected(resp, "enrollment")

    async def unenroll(self, user_id: str, course_id: str) -> bool:
        """Delete the enrollment. False when it did not exist (404)."""
        resp = await self._request("DELETE", _enrollment_path(user_id, course_id))
        if resp.status_code == 404:
            return False
        if resp.status_code not in (200, 202, 204):
            raise self._unexpected(resp, "unenrollment")
        return True

    async def test_connection(self) -> bool:
        """Cheap reachability/auth probe. Never raises."""
        try:
            resp = await self._request("GET", USERS_PATH, params={"limit": 1})
        except UpstreamAPIError as e:
            logger.error("LearnWorlds API connection failed: %s", e)
            return False
        if resp.status_code != 200:
            logger.error("LearnWorlds API connection failed: %s %s", resp.status_code, resp.text[:200])
            return False
        return True
