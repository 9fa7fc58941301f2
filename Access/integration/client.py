from __future__ import annotations

import time
from typing import Any, Callable

import requests

from .adapter import to_check_result, to_mutation_result, to_permissions
from .contracts import Permission
from .exceptions import ContractError, UpstreamUnavailable
from .settings import ContractSettings, get_contract_settings

CallRecorder = Callable[[str, bool, float], None]


class EdgeFunctionClient:
    """HTTP client for the authorization edge functions."""

    def __init__(
        self,
        config: ContractSettings | None = None,
        *,
        on_call: CallRecorder | None = None,
    ) -> None:
        self.config = config or get_contract_settings()
        self.on_call = on_call

    def is_configured(self) -> bool:
        return bool(self.config.base_url)

    def _function_url(self, function_name: str) -> str:
        return f"{self.config.base_url}/{function_name}"

    def check_permission(self, user_id: str, resource: str, action: str) -> bool:
        payload = self._invoke(
            self.config.check_permission_function,
            {"userId": user_id, "resource": resource, "action": action},
        )
        return to_check_result(payload)

    def get_user_permissions(self, user_id: str) -> list[Permission]:
        payload = self._invoke(self.config.user_permissions_function, {"userId": user_id})
        return to_permissions(payload)

    def manage_user_role(
        self,
        *,
        admin_user_id: str,
        target_user_id: str,
        role_name: str,
        operation: str,
    ) -> bool:
        if operation not in ("assign", "remove"):
            raise ContractError(f"Invalid role operation: {operation!r}")
        payload = self._invoke(
            self.config.manage_role_function,
            {
                "adminUserId": admin_user_id,
                "targetUserId": target_user_id,
                "roleName": role_name,
                "operation": operation,
            },
        )
        return to_mutation_result(payload)

    def get_health(self) -> dict[str, Any]:
        if not self.is_configured():
            return {"status": "not_configured"}
        try:
            return self._request("GET", f"{self.config.base_url}/health")
        except UpstreamUnavailable:
            return {"status": "down"}
        except ContractError as exc:
            return {"status": "degraded", "error": str(exc)}

    def _invoke(self, function_name: str, body: dict[str, Any]) -> Any:
        if not self.is_configured():
            raise ContractError("Edge function base URL is not configured.")
        started = time.perf_counter()
        success = False
        try:
            result = self._request("POST", self._function_url(function_name), json=body)
            success = True
            return result
        finally:
            if self.on_call is not None:
                latency_ms = (time.perf_counter() - started) * 1000.0
                self.on_call(function_name, success, latency_ms)

    def _request(self, method: str, url: str, **kwargs: Any) -> Any:
        headers = kwargs.pop("headers", {})
        if self.config.api_token:
            headers["Authorization"] = f"Bearer {self.config.api_token}"
        headers["Accept"] = "application/json"

        last_exception: Exception | None = None
        for _ in range(self.config.max_retries + 1):
            try:
                response = requests.request(
                    method=method,
                    url=url,
                    timeout=self.config.timeout_seconds,
                    headers=headers,
                    **kwargs,
                )
            except requests.RequestException as exc:
                last_exception = exc
                continue

            if response.status_code in (502, 503, 504):
                last_exception = UpstreamUnavailable(
                    f"Upstream unavailable with status {response.status_code}"
                )
                continue
            if response.status_code >= 400:
                raise ContractError(
                    f"Edge function request failed ({response.status_code}): {response.text[:300]}"
                )
            try:
                return response.json()
            except ValueError as exc:
                raise ContractError("Edge function response is not valid JSON.") from exc

        raise UpstreamUnavailable(
            f"Edge function request failed after retries: {last_exception!s}"
        )
