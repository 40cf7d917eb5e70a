"""WPS calendar permission adapter using the v7 open API directly."""

import asyncio
import logging
from typing import Any, Optional

import requests
from pydantic import ValidationError as PydanticValidationError

from ..auth.base import AuthProvider
from ..config import WpsConfig
from ..models.participant import CurrentPermission
from ..utils.exceptions import ACLServiceError
from .base import CalendarAclAdapter

logger = logging.getLogger(__name__)

# Largest permission batch the batch_create endpoint accepts
MAX_BATCH_SIZE = 100
DEFAULT_PAGE_SIZE = 100


class WpsCalendarAclAdapter(CalendarAclAdapter):
    """Manage calendar permissions through the WPS v7 API.

    ``requests`` is blocking, so every call runs in a worker thread.
    """

    def __init__(
        self,
        auth_provider: AuthProvider,
        config: WpsConfig,
        session: Optional[requests.Session] = None,
        batch_size: int = MAX_BATCH_SIZE,
    ):
        self.auth_provider = auth_provider
        self.config = config
        self.session = session or requests.Session()
        self.batch_size = min(batch_size, MAX_BATCH_SIZE)
        self.api_base = f"{config.base_url.rstrip('/')}/v7"

    def _headers(self) -> dict[str, str]:
        token = self.auth_provider.get_access_token()
        return {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
        }

    def _permissions_url(self, calendar_id: str) -> str:
        return f"{self.api_base}/calendars/{calendar_id}/permissions"

    def _request(self, method: str, url: str, **kwargs) -> dict[str, Any]:
        """Send a request and return the ``data`` part of the WPS envelope."""
        resp = self.session.request(
            method, url, headers=self._headers(), timeout=self.config.timeout, **kwargs
        )
        resp.raise_for_status()
        if not resp.content:
            return {}
        payload = resp.json()
        if payload.get("code", 0) != 0:
            raise ACLServiceError(
                f"WPS API error {payload.get('code')}: {payload.get('msg', 'unknown')}"
            )
        return payload.get("data") or {}

    def _list_page(
        self, calendar_id: str, page_size: int, page_token: Optional[str]
    ) -> dict[str, Any]:
        params: dict[str, Any] = {"page_size": page_size, "id_type": self.config.id_type}
        if page_token:
            params["page_token"] = page_token
        try:
            data = self._request("GET", self._permissions_url(calendar_id), params=params)
        except ACLServiceError:
            raise
        except Exception as e:
            raise ACLServiceError(
                f"Failed to list permissions of calendar {calendar_id}: {e}"
            ) from e
        return {
            "items": data.get("items") or [],
            "next_page_token": data.get("next_page_token") or "",
        }

    def _list_all(self, calendar_id: str) -> list[CurrentPermission]:
        permissions = []
        page_token = None
        seen_tokens: set[str] = set()
        while True:
            page = self._list_page(calendar_id, DEFAULT_PAGE_SIZE, page_token)
            for item in page["items"]:
                try:
                    permissions.append(_to_permission(item))
                except PydanticValidationError:
                    logger.warning(f"Skipping permission without user id on {calendar_id}: {item}")
            page_token = page["next_page_token"]
            if not page_token:
                break
            if page_token in seen_tokens:
                logger.warning(f"Permission list of {calendar_id} repeated page token {page_token}")
                break
            seen_tokens.add(page_token)
        logger.debug(f"Calendar {calendar_id} has {len(permissions)} permissions")
        return permissions

    def _batch_create(self, calendar_id: str, items: list[dict[str, str]]) -> dict[str, list[Any]]:
        created: list[Any] = []
        errors: list[str] = []
        url = f"{self._permissions_url(calendar_id)}/batch_create"

        for start in range(0, len(items), self.batch_size):
            batch = items[start:start + self.batch_size]
            try:
                data = self._request(
                    "POST",
                    url,
                    params={"id_type": self.config.id_type},
                    json={"permissions": batch},
                )
                created.extend(data.get("items") or [])
                logger.debug(f"Created {len(batch)} permissions on {calendar_id}")
            except Exception as e:
                error_msg = (
                    f"Batch {start // self.batch_size + 1} ({len(batch)} users) failed: {e}"
                )
                logger.error(error_msg)
                errors.append(error_msg)

        return {"items": created, "errors": errors}

    def _delete(self, calendar_id: str, user_id: str, permission_id: Optional[str]) -> None:
        if not permission_id:
            match = next((p for p in self._list_all(calendar_id) if p.user_id == user_id), None)
            if match is None or not match.permission_id:
                logger.debug(f"No permission of {user_id} on {calendar_id} to delete")
                return
            permission_id = match.permission_id

        try:
            self._request("DELETE", f"{self._permissions_url(calendar_id)}/{permission_id}")
            logger.info(f"Deleted permission of {user_id} on {calendar_id}")
        except ACLServiceError:
            raise
        except Exception as e:
            raise ACLServiceError(
                f"Failed to delete permission of {user_id} on {calendar_id}: {e}"
            ) from e

    async def get_all_calendar_permissions(self, calendar_id: str) -> list[CurrentPermission]:
        return await asyncio.to_thread(self._list_all, calendar_id)

    async def batch_create_calendar_permissions_limit(
        self,
        calendar_id: str,
        items: list[dict[str, str]],
    ) -> dict[str, list[Any]]:
        return await asyncio.to_thread(self._batch_create, calendar_id, items)

    async def get_calendar_permission_list(
        self,
        calendar_id: str,
        page_size: int = DEFAULT_PAGE_SIZE,
        page_token: Optional[str] = None,
    ) -> dict[str, Any]:
        return await asyncio.to_thread(self._list_page, calendar_id, page_size, page_token)

    async def delete_calendar_permission(
        self,
        calendar_id: str,
        user_id: str,
        permission_id: Optional[str] = None,
    ) -> None:
        await asyncio.to_thread(self._delete, calendar_id, user_id, permission_id)


def _to_permission(item: dict[str, Any]) -> CurrentPermission:
    user = item.get("user") or {}
    return CurrentPermission(
        user_id=str(item.get("user_id") or user.get("id") or "").strip(),
        role=item.get("role", ""),
        display_name=item.get("display_name") or user.get("name") or "",
        permission_id=item.get("id"),
    )
