from __future__ import annotations
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, model_validator


class PlanRequest(BaseModel):
    target_panel_id: int = Field(..., gt=0, description="Panel that receives the critical breakers")
    source_panel_id: Optional[int] = Field(
        default=None, gt=0,
        description="Panel to empty of critical breakers; defaults to the panel of the first critical breaker",
    )

    @model_validator(mode="after")
    def _distinct_panels(self):
        if self.source_panel_id is not None and self.source_panel_id == self.target_panel_id:
            raise ValueError("source_panel_id and target_panel_id must differ")
        return self


class ApplyBatchRequest(PlanRequest):
    batch_number: int = Field(..., ge=1)
    fingerprint: str = Field(
        ..., min_length=1,
        description="`fingerprint` of the batch as reviewed in the plan; a batch that changed since is refused (409)",
    )


class ApplyBatchResult(BaseModel):
    success: bool
    batch_number: int
    moves_applied: int
    functional_completion: str
    remaining_batches: int
    plan: Optional[Dict[str, Any]] = None
