from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx

from scheduling_core.core.errors import UpstreamError


logger = logging.getLogger(__name__)


def _run_sync(coro, *, operation: str):
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.run(coro)
    coro.close()
    logger.warning("collaborator_called_in_running_loop", extra={"operation": operation})
    raise UpstreamError(f"{operation} cannot be called from inside a running event loop.", context={"operation": operation})


class BaseWalletClient:
    def request_refund(self, instruction: dict[str, Any]) -> dict[str, Any]:
        return _run_sync(self.request_refund_async(instruction), operation="wallet.request_refund")

    async def request_refund_async(self, instruction: dict[str, Any]) -> dict[str, Any]:
        raise NotImplementedError


class EmbeddedWalletClient(BaseWalletClient):
    """Acknowledges refunds locally; the ledger itself lives elsewhere."""

    async def request_refund_async(self, instruction: dict[str, Any]) -> dict[str, Any]:
        logger.info(
            "refund_instruction_recorded",
            extra={
                "instruction_id": instruction.get("instruction_id"),
                "booking_id": instruction.get("booking_id"),
                "contract_id": instruction.get("contract_id"),
            },
        )
        return {"accepted": True, "mode": "embedded"}


class RemoteWalletClient(BaseWalletClient):
    def __init__(self, base_url: str, *, timeout: float = 10.0, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    async def request_refund_async(self, instruction: dict[str, Any]) -> dict[str, Any]:
        try:
            async with httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(
                    "/refunds",
                    json=instruction,
                    headers={"Idempotency-Key": str(instruction.get("instruction_id") or "")},
                )
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPStatusError as exc:
            raise UpstreamError(
                f"Wallet service rejected the refund request (HTTP {exc.response.status_code}).",
                context={"status_code": exc.response.status_code, "body": exc.response.text[:500]},
            ) from exc
        except httpx.HTTPError as exc:
            raise UpstreamError(
                f"Wallet service is unreachable: {exc}",
                context={"base_url": self.base_url},
            ) from exc
        except ValueError as exc:
            raise UpstreamError("Wallet service returned a malformed response.", context={"base_url": self.base_url}) from exc
        if isinstance(data, dict):
            return {**data, "mode": "remote"}
        return {"accepted": True, "mode": "remote"}


class BaseProfileClient:
    def get_user(self, user_id: str) -> dict[str, Any] | None:
        return _run_sync(self.get_user_async(user_id), operation="profile.get_user")

    async def get_user_async(self, user_id: str) -> dict[str, Any] | None:
        raise NotImplementedError


class EmbeddedProfileClient(BaseProfileClient):
    """Profiles come from the local tutors table; nothing extra to fetch."""

    async def get_user_async(self, user_id: str) -> dict[str, Any] | None:
        return None


class RemoteProfileClient(BaseProfileClient):
    def __init__(self, base_url: str, *, timeout: float = 10.0, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    async def get_user_async(self, user_id: str) -> dict[str, Any] | None:
        try:
            async with httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout, transport=self._transport) as client:
                response = await client.get(f"/users/{user_id}")
                if response.status_code == 404:
                    return None
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPStatusError as exc:
            raise UpstreamError(
                f"Profile service failed to load user {user_id} (HTTP {exc.response.status_code}).",
                context={"user_id": user_id, "status_code": exc.response.status_code},
            ) from exc
        except httpx.HTTPError as exc:
            raise UpstreamError(
                f"Profile service is unreachable: {exc}",
                context={"user_id": user_id, "base_url": self.base_url},
            ) from exc
        except ValueError as exc:
            raise UpstreamError("Profile service returned a malformed response.", context={"user_id": user_id}) from exc
        if isinstance(data, dict) and isinstance(data.get("data"), dict):
            return data["data"]
        return data if isinstance(data, dict) else None
