"""Core data types and Pydantic models."""

from enum import Enum
from typing import List, Dict, Optional, Any, Literal, Union
from pydantic import BaseModel, ConfigDict, Field


class TaskType(str, Enum):
    """Coarse request category used to pick preferred models."""
    CHAT = "chat"
    CODE_GENERATION = "code-generation"
    DEBUG = "debug"
    REFACTOR = "refactor"
    TEST_GENERATION = "test-generation"
    COMPLETION = "completion"
    MULTI_EDIT = "multi-edit"
    GIT_ANALYSIS = "git-analysis"
    CODE_REVIEW = "code-review"
    LONG_CONTEXT = "long-context"


class ImageURL(BaseModel):
    """Image reference inside a multimodal message part."""
    model_config = ConfigDict(frozen=True)

    url: str = Field(..., description="http(s) or data: URL")


class ContentPart(BaseModel):
    """One part of a multimodal message."""
    model_config = ConfigDict(frozen=True)

    type: Literal["text", "image_url"]
    text: Optional[str] = None
    image_url: Optional[ImageURL] = None

    @classmethod
    def of_text(cls, text: str) -> "ContentPart":
        return cls(type="text", text=text)

    @classmethod
    def of_image(cls, url: str) -> "ContentPart":
        return cls(type="image_url", image_url=ImageURL(url=url))


class ChatMessage(BaseModel):
    """Chat message sent to the provider."""
    model_config = ConfigDict(frozen=True)

    role: Literal["system", "user", "assistant"] = Field(..., description="Message role")
    content: Union[str, List[ContentPart]] = Field(..., description="Text or multimodal parts")

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)


class CompletionRequest(BaseModel):
    """Arguments for a single chat completion."""
    messages: List[ChatMessage] = Field(..., min_length=1)
    api_key: Optional[str] = Field(None, description="Overrides session key resolution")
    model: Optional[str] = Field(None, description="Preferred model id")
    temperature: float = Field(default=0.2, ge=0.0, le=2.0)
    max_tokens: Optional[int] = Field(None, gt=0)
    task_type: Optional[TaskType] = None
    prompt: Optional[str] = Field(None, description="Raw user prompt for task detection")
    thinking: Optional[bool] = Field(None, description="Request medium (True) or low (False) reasoning effort")


class CompletionResult(BaseModel):
    """First successful completion across the candidate list."""
    model: str = Field(..., description="Candidate that answered")
    message: Dict[str, Any] = Field(default_factory=dict, description="choices[0].message")
    raw_response: Dict[str, Any] = Field(default_factory=dict)

    @property
    def content(self) -> str:
        value = self.message.get("content")
        return value if isinstance(value, str) else ""
