"""
app/lms/client.py

Async RPC-over-HTTP client for the LMS web-service endpoint.

Every call is one form-encoded POST carrying the function name, the service
token and the function parameters. The client performs no retries; a failed
call is reported to the caller, which decides how to degrade.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

import httpx

from app.config import LMSSettings
from app.lms.errors import LMSPayloadError, LMSRequestError

logger = logging.getLogger(__name__)


def flatten_params(params: Mapping[str, Any], prefix: str = "") -> dict[str, str]:
    """
    Flatten nested parameters into the bracket notation the LMS expects.

    ``{"criteria": [{"key": "deleted", "value": 0}]}`` becomes
    ``{"criteria[0][key]": "deleted", "criteria[0][value]": "0"}``.
    """

    flat: dict[str, str] = {}
    for key, value in params.items():
        name = f"{prefix}[{key}]" if prefix else str(key)
        if isinstance(value, Mapping):
            flat.update(flatten_params(value, name))
        elif isinstance(value, (list, tuple)):
            flat.update(flatten_params({str(i): item for i, item in enumerate(value)}, name))
        elif isinstance(value, bool):
            flat[name] = "1" if value else "0"
        elif value is None:
            continue
        else:
            flat[name] = str(value)
    return flat


class LMSClient:
    """
    Thin async wrapper around the LMS REST endpoint.

    One :class:`httpx.AsyncClient` is shared by all calls so concurrent
    requests reuse pooled connections. Call :meth:`aclose` on shutdown.
    """

    def __init__(
        self,
        *,
        settings: LMSSettings,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._settings = settings
        self._owns_client = http_client is None
        self._http = http_client or httpx.AsyncClient(
            timeout=settings.timeout_seconds,
            verify=settings.verify_tls,
        )

    async def call(self, function: str, params: Mapping[str, Any] | None = None) -> Any:
        """
        Invoke one LMS function and return the parsed JSON body.

        Raises
        ------
        LMSRequestError
            Timeout, connection failure, non-2xx status, or an LMS error envelope.
        LMSPayloadError
            The body was not valid JSON.
        """

        form = {
            "wstoken": self._settings.token,
            "wsfunction": function,
            "moodlewsrestformat": self._settings.rest_format,
            **flatten_params(params or {}),
        }
        try:
            response = await self._http.post(self._settings.base_url, data=form)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            status_code = exc.response.status_code
            logger.warning("LMS call failed function=%s status=%s", function, status_code)
            raise LMSRequestError(f"{function}: HTTP {status_code}.") from exc
        except httpx.TimeoutException as exc:
            logger.warning("LMS call timed out function=%s", function)
            raise LMSRequestError(f"{function}: request timed out.") from exc
        except httpx.HTTPError as exc:
            logger.warning("LMS call transport error function=%s error=%s", function, exc)
            raise LMSRequestError(f"{function}: transport error.") from exc

        try:
            payload = response.json()
        except ValueError as exc:
            raise LMSPayloadError(f"{function}: response was not valid JSON.") from exc

        if isinstance(payload, dict) and "exception" in payload and "errorcode" in payload:
            logger.warning(
                "LMS returned error envelope function=%s errorcode=%s message=%s",
                function,
                payload.get("errorcode"),
                payload.get("message"),
            )
            raise LMSRequestError(f"{function}: {payload.get('errorcode')}.")

        return payload

    async def aclose(self) -> None:
        if self._owns_client:
            await self._http.aclose()
