"""
Swap plan returned by the planning service.

The wire shape is ``{steps: [{id, items: [{status?, data: {to, data, value, gas?, gasPrice?}}]}]}``;
flat items (``{to, data, value, ...}`` without the ``data`` envelope) are
accepted too.
"""
from __future__ import annotations

import enum
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from limit_engine.services.chain import TxRequest


class StepKind(str, enum.Enum):
    APPROVE = "approve"
    DEPOSIT = "deposit"
    SWAP = "swap"
    OTHER = "other"

    @classmethod
    def from_step_id(cls, step_id: str) -> "StepKind":
        try:
            return cls(step_id.strip().lower())
        except ValueError:
            return cls.OTHER


def _to_int(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    if isinstance(value, int):
        return value
    text = str(value).strip()
    return int(text, 16) if text.lower().startswith("0x") else int(text)


class PlanItem(BaseModel):
    to: str
    data: str = "0x"
    value: int = 0
    gas: Optional[int] = None
    gas_price: Optional[int] = Field(default=None, alias="gasPrice")
    status: Optional[str] = None

    model_config = {"populate_by_name": True}

    @model_validator(mode="before")
    @classmethod
    def unwrap_envelope(cls, raw: Any) -> Any:
        if isinstance(raw, dict) and isinstance(raw.get("data"), dict):
            return {**raw["data"], "status": raw.get("status")}
        return raw

    @field_validator("value", "gas", "gas_price", mode="before")
    @classmethod
    def parse_quantity(cls, v: Any) -> Optional[int]:
        return _to_int(v)

    @property
    def is_complete(self) -> bool:
        return (self.status or "").lower() == "complete"

    def to_tx_request(self) -> TxRequest:
        return TxRequest(
            to=self.to,
            data=self.data or "0x",
            value=self.value or 0,
            gas=self.gas,
            gas_price=self.gas_price,
        )


class PlanStep(BaseModel):
    id: str
    items: list[PlanItem] = Field(default_factory=list)

    @property
    def kind(self) -> StepKind:
        return StepKind.from_step_id(self.id)

    @property
    def pending_items(self) -> list[PlanItem]:
        return [item for item in self.items if not item.is_complete]


class SwapPlan(BaseModel):
    steps: list[PlanStep]

    @field_validator("steps")
    @classmethod
    def must_have_work(cls, steps: list[PlanStep]) -> list[PlanStep]:
        if not any(step.pending_items for step in steps):
            raise ValueError("swap plan contains no transactions")
        return steps

    @property
    def receipt_step_index(self) -> int:
        """Index of the step whose tx hash is the order's execution receipt."""
        for index in range(len(self.steps) - 1, -1, -1):
            if self.steps[index].kind == StepKind.SWAP and self.steps[index].pending_items:
                return index
        for index in range(len(self.steps) - 1, -1, -1):
            if self.steps[index].pending_items:
                return index
        return len(self.steps) - 1
