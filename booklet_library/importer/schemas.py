from typing import Dict, Optional

from pydantic import BaseModel, Field


class ImportResult(BaseModel):
    """Outcome of a bulk import. Never raised, always returned."""
    success: bool
    count: int = 0
    message: Optional[str] = None
    collections: Dict[str, int] = Field(default_factory=dict)
    skipped: int = 0
