from __future__ import annotations

from typing import Any

from .contracts import Permission


def _as_set(value: Any) -> set[str]:
    if not value:
        return set()
    if isinstance(value, (list, tuple, set, frozenset)):
        return {str(item).strip() for item in value if str(item).strip()}
    return {str(value).strip()}


def to_permission(payload: dict[str, Any]) -> Permission | None:
    resource = str(payload.get("resource", "") or "").strip()
    if not resource:
        return None
    return Permission(resource=resource, actions=frozenset(_as_set(payload.get("actions"))))


def to_permissions(payload: Any) -> list[Permission]:
    """
    Adapter for the effective permissions payload:
    [{"resource": "outlets", "actions": ["read", "update"]}, ...]

    Some deployments wrap the list as {"permissions": [...]}. Order is kept.
    """
    if isinstance(payload, dict):
        payload = payload.get("permissions")
    if not isinstance(payload, list):
        return []
    permissions: list[Permission] = []
    for row in payload:
        if not isinstance(row, dict):
            continue
        permission = to_permission(row)
        if permission is not None:
            permissions.append(permission)
    return permissions


def to_check_result(payload: Any) -> bool:
    if not isinstance(payload, dict):
        return False
    return payload.get("hasPermission") is True


def to_mutation_result(payload: Any) -> bool:
    if not isinstance(payload, dict):
        return False
    return payload.get("success") is True
