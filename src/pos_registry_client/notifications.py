from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable

NoticeListener = Callable[[dict[str, Any]], None]


@dataclass
class NotificationCenter:
    messages: list[dict[str, Any]] = field(default_factory=list)
    listeners: list[NoticeListener] = field(default_factory=list)

    def push(self, *, level: str, title: str, message: str, details: dict[str, Any] | None = None) -> dict[str, Any]:
        payload = {
            "level": level,
            "title": title,
            "message": message,
            "details": details or {},
        }
        self.messages.append(payload)
        for listener in list(self.listeners):
            listener(payload)
        return payload

    def info(self, title: str, message: str, **details: Any) -> dict[str, Any]:
        return self.push(level="info", title=title, message=message, details=details)

    def success(self, title: str, message: str, **details: Any) -> dict[str, Any]:
        return self.push(level="success", title=title, message=message, details=details)

    def warning(self, title: str, message: str, **details: Any) -> dict[str, Any]:
        return self.push(level="warning", title=title, message=message, details=details)

    def error(self, title: str, message: str, **details: Any) -> dict[str, Any]:
        return self.push(level="error", title=title, message=message, details=details)

    def subscribe(self, listener: NoticeListener) -> None:
        self.listeners.append(listener)

    def latest(self) -> dict[str, Any] | None:
        return self.messages[-1] if self.messages else None

    def titles(self) -> list[str]:
        return [message["title"] for message in self.messages]

    def clear(self) -> None:
        self.messages.clear()

    def render(self) -> dict[str, Any]:
        return {"count": len(self.messages), "messages": list(self.messages)}
