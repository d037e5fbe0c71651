"""Inbound sync trigger and its response, shared by the API and the CLI."""
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class SyncRequest(BaseModel):
    resource_type: str = "all"  # a ResourceType value, or "all"
    batch_size: Optional[int] = Field(default=None, ge=1)
    filters: Dict[str, str] = Field(default_factory=dict)
    preview: bool = False
    strategic_plan: bool = False
    # False for scheduled runs: complete types are refreshed once their
    # sync interval has passed instead of being skipped.
    manual: bool = True


class SyncResponse(BaseModel):
    success: bool
    records_processed: Optional[int] = None
    is_complete: Optional[bool] = None
    total_fetched: Optional[int] = None
    error: Optional[str] = None

    # Preview only
    url: Optional[str] = None
    batch_size: Optional[int] = None
    offset: Optional[int] = None

    # Strategic plan only
    phases: Optional[List[Dict[str, Any]]] = None
