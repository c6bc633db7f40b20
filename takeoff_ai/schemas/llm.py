"""Provider-neutral completion request and result."""

from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class CompletionRequest(BaseModel):
    system_prompt: str
    user_prompt: str
    images: List[str] = Field(default_factory=list, description="Page image URLs")
    max_tokens: int = 4096
    temperature: float = 0.2


class CompletionResult(BaseModel):
    content: str
    usage: Dict[str, int] = Field(default_factory=dict)
    provider: Optional[str] = None
    model: Optional[str] = None
