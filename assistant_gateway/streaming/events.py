from dataclasses import dataclass, field
from typing import Any, ClassVar


@dataclass(frozen=True)
class DeltaEvent:
    text: str
    terminal: ClassVar[bool] = False

    def as_wire(self) -> dict[str, Any]:
        return {"type": "delta", "data": self.text}


@dataclass(frozen=True)
class ActionEvent:
    name: str
    params: dict[str, Any] = field(default_factory=dict)
    terminal: ClassVar[bool] = False

    def as_wire(self) -> dict[str, Any]:
        return {"type": "action", "action": self.name, "params": self.params}


@dataclass(frozen=True)
class DoneEvent:
    explanation: str = ""
    terminal: ClassVar[bool] = True

    def as_wire(self) -> dict[str, Any]:
        return {"type": "done", "explanation": self.explanation}


@dataclass(frozen=True)
class ErrorEvent:
    message: str
    terminal: ClassVar[bool] = True

    def as_wire(self) -> dict[str, Any]:
        return {"type": "error", "data": self.message}


NormalizedEvent = DeltaEvent | ActionEvent | DoneEvent | ErrorEvent
