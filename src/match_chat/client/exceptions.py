from __future__ import annotations

from typing import Any


class ChatClientError(Exception):
    """Unexpected response from the chat API."""

    def __init__(self, detail: Any = "", status_code: int | None = None) -> None:
        self.detail = detail
        self.status_code = status_code
        super().__init__(detail)


class SendFailedError(ChatClientError):
    """A send did not reach the server; ``text`` is what the user typed."""

    def __init__(self, text: str, detail: Any = "", *, code: str | None = None) -> None:
        self.text = text
        self.code = code
        super().__init__(detail)
