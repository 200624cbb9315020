"""HTTP adapter for the cloud drive backend."""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Optional

import httpx

from ..errors import (
    ConnectivityError,
    RemoteItemNotFoundError,
    ServerRejectionError,
    SessionCreationError,
)
from ..models import RemoteItem, RetentionMode, UploadSession
from ..protocols import ProgressCallback

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 10 * 320 * 1024

NAMESPACES = {
    RetentionMode.STAGED: "budget-files",
    RetentionMode.PERMANENT: "files",
}


def _error_detail(response: httpx.Response) -> Any:
    try:
        return response.json()
    except Exception:
        return response.text


class HTTPRemoteStore:
    """
    HTTP client adapter for the drive backend.

    Implements IRemoteStore protocol. Routes, per retention namespace:
        POST   /{ns}/upload-session         -> {session_id, upload_url}
        PUT    {upload_url}                 (Content-Range chunks)
        GET    /{ns}/items/{item_id}/content
        DELETE /{ns}/items/{item_id}
    """

    def __init__(
        self,
        base_url: str,
        timeout: int = 60,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        max_retries: int = 3,
        retry_delay: float = 0.5,
        headers: Optional[Dict[str, str]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._base_url = base_url
        self._timeout = timeout
        self._chunk_size = chunk_size
        self._max_retries = max(1, max_retries)
        self._retry_delay = retry_delay
        self._headers = headers or {}
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self):
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            timeout=self._timeout,
            headers=self._headers,
            transport=self._transport,
        )
        return self

    async def __aexit__(self, *args):
        if self._client:
            await self._client.aclose()
            self._client = None

    def _require_client(self) -> httpx.AsyncClient:
        if not self._client:
            raise RuntimeError("HTTPRemoteStore not initialized. Use 'async with' context.")
        return self._client

    async def create_session(
        self,
        context_id: Optional[str],
        mode: RetentionMode,
        *,
        file_name: str,
        file_size: int,
        order_id: Optional[str] = None,
        budget_category: Optional[str] = None,
    ) -> UploadSession:
        client = self._require_client()
        endpoint = f"/{NAMESPACES[mode]}/upload-session"
        payload = {
            "context_id": context_id,
            "file_name": file_name,
            "file_size": file_size,
            "order_id": order_id,
            "budget_category": budget_category,
        }
        payload = {key: value for key, value in payload.items() if value is not None}

        try:
            response = await client.post(endpoint, json=payload)
        except httpx.RequestError as exc:
            raise ConnectivityError(f"could not reach drive backend: {exc}") from exc

        if response.status_code >= 400:
            raise SessionCreationError(
                f"API error {response.status_code} on POST {endpoint}: {_error_detail(response)}",
                status_code=response.status_code,
            )

        body = response.json()
        upload_url = body.get("upload_url") or body.get("uploadUrl")
        if not upload_url:
            raise SessionCreationError(f"POST {endpoint} returned no upload URL")

        logger.debug(f"Upload session opened for {file_name} ({mode.value})")
        return UploadSession(
            session_id=str(body.get("session_id") or upload_url),
            mode=mode,
            file_name=file_name,
            upload_url=upload_url,
        )

    async def put_bytes(
        self,
        session: UploadSession,
        data: bytes,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> RemoteItem:
        """Send data in Content-Range chunks. Chunks are never retried."""
        client = self._require_client()
        total = len(data)
        offset = 0
        response: Optional[httpx.Response] = None

        while response is None or offset < total:
            chunk = data[offset:offset + self._chunk_size]
            headers = {}
            if total:
                headers["Content-Range"] = f"bytes {offset}-{offset + len(chunk) - 1}/{total}"

            try:
                response = await client.put(session.upload_url, content=chunk, headers=headers)
            except httpx.RequestError as exc:
                raise ConnectivityError(f"transfer of {session.file_name} interrupted: {exc}") from exc

            if response.status_code >= 400:
                raise ServerRejectionError(
                    f"chunk at offset {offset} rejected with {response.status_code}: {_error_detail(response)}",
                    status_code=response.status_code,
                )

            offset += len(chunk)
            if progress_callback:
                await progress_callback(int(offset * 100 / total) if total else 100)

        return self._parse_item(response)

    async def get_bytes(self, item_id: str, mode: RetentionMode) -> bytes:
        endpoint = f"/{NAMESPACES[mode]}/items/{item_id}/content"
        response = await self._request_with_retry("GET", endpoint)

        if response.status_code == 404:
            raise RemoteItemNotFoundError(f"item {item_id} not found", status_code=404)
        if response.status_code >= 400:
            raise ServerRejectionError(
                f"API error {response.status_code} on GET {endpoint}: {_error_detail(response)}",
                status_code=response.status_code,
            )
        return response.content

    async def delete(self, item_id: str, mode: RetentionMode) -> None:
        endpoint = f"/{NAMESPACES[mode]}/items/{item_id}"
        response = await self._request_with_retry("DELETE", endpoint)

        if response.status_code in (404, 410):
            logger.debug(f"Item {item_id} already absent")
            return
        if response.status_code >= 400:
            raise ServerRejectionError(
                f"API error {response.status_code} on DELETE {endpoint}: {_error_detail(response)}",
                status_code=response.status_code,
            )

    async def _request_with_retry(self, method: str, endpoint: str) -> httpx.Response:
        """Idempotent request with bounded retries on 5xx and transport errors."""
        client = self._require_client()
        last_exception: Optional[Exception] = None

        for attempt in range(self._max_retries):
            try:
                response = await client.request(method, endpoint)

                if response.status_code >= 500 and attempt < self._max_retries - 1:
                    await asyncio.sleep(self._retry_delay * (attempt + 1))
                    continue

                return response
            except httpx.RequestError as exc:
                last_exception = exc
                if attempt < self._max_retries - 1:
                    await asyncio.sleep(self._retry_delay * (attempt + 1))
                    continue

        raise ConnectivityError(
            f"Failed to {method} {endpoint} after {self._max_retries} attempts: {last_exception}"
        ) from last_exception

    @staticmethod
    def _parse_item(response: httpx.Response) -> RemoteItem:
        try:
            body = response.json()
        except ValueError as exc:
            raise ServerRejectionError("upload finished with an unreadable response") from exc

        item_id = body.get("onedrive_item_id") or body.get("id")
        if not item_id:
            raise ServerRejectionError("upload finished without an item identifier")

        return RemoteItem(
            item_id=str(item_id),
            download_url=body.get("onedrive_download_url") or body.get("@microsoft.graph.downloadUrl"),
            file_id=body.get("file_id") or body.get("fileId"),
        )
