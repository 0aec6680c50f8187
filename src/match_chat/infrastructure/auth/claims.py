from __future__ import annotations

from typing import Any

from match_chat.application.dto.principal import Principal


def principal_from_claims(payload: dict[str, Any]) -> Principal:
    roles = payload.get("roles") or []
    if isinstance(roles, str):
        roles = [roles]
    return Principal(user_id=int(payload["sub"]), roles=list(roles))
