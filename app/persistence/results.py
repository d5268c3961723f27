"""Tagged results returned by the persistence gateway"""

from dataclasses import dataclass, field
from typing import Any, Dict
import enum

SUCCESS = "SUCCESS"


class Outcome(str, enum.Enum):
    """How a stored-procedure-style operation ended"""
    SUCCESS = "success"
    REJECTED = "bad_request"
    CONFLICT = "conflict"
    NOT_FOUND = "not_found"


@dataclass
class ProcedureResult:
    """Outcome plus the domain status string and any returned values"""
    outcome: Outcome
    detail: str = SUCCESS
    data: Dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.outcome is Outcome.SUCCESS

    @property
    def status(self) -> str:
        return self.detail

    @property
    def status_type(self) -> str:
        return self.outcome.value

    def __getitem__(self, key: str) -> Any:
        return self.data[key]

    def get(self, key: str, default: Any = None) -> Any:
        return self.data.get(key, default)

    @classmethod
    def success(cls, **data: Any) -> "ProcedureResult":
        return cls(Outcome.SUCCESS, SUCCESS, data)

    @classmethod
    def rejected(cls, detail: str, **data: Any) -> "ProcedureResult":
        return cls(Outcome.REJECTED, detail, data)

    @classmethod
    def conflict(cls, detail: str, **data: Any) -> "ProcedureResult":
        return cls(Outcome.CONFLICT, detail, data)

    @classmethod
    def not_found(cls, detail: str, **data: Any) -> "ProcedureResult":
        return cls(Outcome.NOT_FOUND, detail, data)
