"""Client for the remote reconciliation ledger.

The ledger speaks a single-endpoint JSON protocol: every request is a POST of
``{"action": ..., **fields}`` and every response is a JSON object whose
``success``/``status`` fields signal acceptance.
"""

from __future__ import annotations

import asyncio
import http.client
import json
from typing import Any, Self, cast
import urllib.error
import urllib.request

import loguru
from loguru import logger
from pydantic import BaseModel, ConfigDict, ValidationError

from cashrecon.core.config import (
    CLIENT_NAME,
    MODULE_TAG,
    REQUEST_TIMEOUT_SECONDS,
    ReconConfig,
)
from cashrecon.errors import TransientNetworkError

ACTION_PING = "ping"
ACTION_HEARTBEAT = "heartbeat"
ACTION_INIT = "init"
ACTION_SAVE = "saveCashReconciliation"
ACTION_INVENTORY_SALES = "calculateSalesFromInventory"


class LedgerResponse(BaseModel):
    """Response envelope returned by the ledger for every action."""

    model_config = ConfigDict(extra="allow")

    success: Any = None
    status: Any = None
    data: Any = None
    error: Any = None
    metadata: Any = None

    @classmethod
    def parse(cls, data: Any) -> Self:
        return cls.model_validate(data)

    @property
    def accepted(self) -> bool:
        return bool(self.success) or self.status == "success"

    @property
    def detail(self) -> str | None:
        """Error detail carried by the envelope, verbatim when it is text."""
        for value in (self.data, self.error):
            if value is None or value == "":
                continue
            if isinstance(value, str):
                return value
            return json.dumps(value, ensure_ascii=False)
        return None


class LedgerClientLogger:
    """Handles all logging for LedgerClient."""

    def __init__(self, logger_instance: loguru.Logger = logger) -> None:
        self._logger = logger_instance

    def request_failed(self, action: str, reason: str) -> None:
        self._logger.bind(action=action, reason=reason).warning(
            "Ledger call '{}' failed: {}", action, reason
        )

    def non_json_response(self, action: str, body: str) -> None:
        self._logger.bind(action=action).error(
            "Non-JSON response from ledger for '{}': {}", action, body[:400]
        )

    def response_received(self, action: str, accepted: bool) -> None:
        self._logger.bind(action=action, accepted=accepted).debug(
            "Ledger call '{}' answered (accepted={})", action, accepted
        )


class LedgerClient:
    def __init__(
        self,
        *,
        url: str,
        timeout: float = REQUEST_TIMEOUT_SECONDS,
        client_logger: LedgerClientLogger | None = None,
    ) -> None:
        self._url = url
        self._timeout = timeout
        self._logger = client_logger or LedgerClientLogger()

    @classmethod
    def from_config(cls, config: ReconConfig) -> LedgerClient:
        return cls(url=config.ledger_url, timeout=config.request_timeout)

    @property
    def url(self) -> str:
        return self._url

    def _parse_json_response(self, action: str, body: str) -> dict[str, Any]:
        try:
            parsed = json.loads(body)
        except json.JSONDecodeError as e:
            self._logger.non_json_response(action, body)
            raise TransientNetworkError(
                "Server returned non-JSON (check ledger deployment URL & access)."
            ) from e
        if not isinstance(parsed, dict):
            raise TransientNetworkError(
                f"Ledger returned {type(parsed).__name__}, expected an object"
            )
        return cast(dict[str, Any], parsed)

    def _http_error_detail(self, action: str, e: urllib.error.HTTPError) -> str:
        try:
            err_body = e.read().decode("utf-8", "ignore")
        except (OSError, http.client.HTTPException):
            return f"HTTP {e.code}"
        try:
            envelope = LedgerResponse.parse(json.loads(err_body))
        except (json.JSONDecodeError, ValidationError):
            self._logger.non_json_response(action, err_body)
            return f"HTTP {e.code}"
        return envelope.detail or f"HTTP {e.code}"

    def _post(self, payload: dict[str, Any]) -> dict[str, Any]:
        action = str(payload.get("action", ""))
        if not self._url:
            raise TransientNetworkError("No ledger URL configured")

        data = json.dumps(payload).encode("utf-8")
        req = urllib.request.Request(  # noqa: S310
            self._url,
            data=data,
            headers={"Content-Type": "application/json"},
            method="POST",
        )

        try:
            with urllib.request.urlopen(req, timeout=self._timeout) as resp:  # noqa: S310
                raw = resp.read()
        except urllib.error.HTTPError as e:
            raise TransientNetworkError(self._http_error_detail(action, e)) from e
        except urllib.error.URLError as e:
            raise TransientNetworkError(f"Network error calling ledger: {e.reason}") from e
        except TimeoutError as e:
            raise TransientNetworkError(
                f"Ledger did not answer within {self._timeout:g}s"
            ) from e
        except (OSError, http.client.HTTPException) as e:
            # Hang-ups and resets surface here, not as URLError.
            raise TransientNetworkError(
                f"Connection to ledger failed: {type(e).__name__}: {e}"
            ) from e

        try:
            body = raw.decode("utf-8")
        except UnicodeDecodeError as e:
            self._logger.non_json_response(action, raw.decode("utf-8", "replace"))
            raise TransientNetworkError("Ledger returned a body that is not UTF-8") from e

        return self._parse_json_response(action, body)

    async def call(self, action: str, **fields: Any) -> LedgerResponse:
        """Send one action and return its envelope.

        Raises:
            TransientNetworkError: On network failure, non-2xx status, a body
                that is not a JSON object, or an envelope that fails validation.
        """
        payload = {"action": action, **fields}
        try:
            raw = await asyncio.to_thread(self._post, payload)
            response = LedgerResponse.parse(raw)
        except TransientNetworkError as e:
            self._logger.request_failed(action, str(e))
            raise
        except ValidationError as e:
            self._logger.request_failed(action, "malformed envelope")
            raise TransientNetworkError(f"Malformed ledger response: {e}") from e

        self._logger.response_received(action, response.accepted)
        return response

    # High-level APIs -----------------------------------------------------

    async def ping(self) -> LedgerResponse:
        return await self.call(ACTION_PING)

    async def heartbeat(
        self, *, device_id: str, route: str, module: str = MODULE_TAG
    ) -> LedgerResponse:
        # The ledger identifies devices by the ``userId`` field.
        return await self.call(
            ACTION_HEARTBEAT,
            userId=device_id,
            route=route,
            module=module,
            userName=CLIENT_NAME,
        )

    async def init(self) -> LedgerResponse:
        return await self.call(ACTION_INIT)

    async def save_reconciliation(self, payload: dict[str, Any]) -> LedgerResponse:
        return await self.call(ACTION_SAVE, **payload)

    async def calculate_sales_from_inventory(
        self, *, route: str, current_date: str, previous_date: str
    ) -> LedgerResponse:
        return await self.call(
            ACTION_INVENTORY_SALES,
            route=route,
            currentDate=current_date,
            previousDate=previous_date,
        )
