"""Data models for recorded traces.

A trace is the wire contract between capture and replay:

    {"version": 1,
     "meta": {"userAgent": "...", "viewport": {"width": 1280, "height": 720}},
     "steps": [{"type": "navigate", "url": "...", "ts": 0}, ...]}

Steps form a closed tagged union keyed by ``type``.
"""

from enum import Enum
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from ..config import SUPPORTED_TRACE_VERSION


class StepType(str, Enum):
    """Closed set of recordable step kinds."""

    NAVIGATE = "navigate"
    CLICK = "click"
    TYPE = "type"
    KEY = "key"
    SCROLL = "scroll"
    WAIT_VISIBLE = "waitVisible"


STEP_TYPES = frozenset(t.value for t in StepType)


class Offset(BaseModel):
    """Pointer position relative to the target's bounding box."""

    x: int = 0
    y: int = 0


class Viewport(BaseModel):
    width: int = 0
    height: int = 0


class TraceMeta(BaseModel):
    """Environment the trace was recorded in."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    user_agent: str = Field("", alias="userAgent")
    viewport: Viewport = Field(default_factory=Viewport)


class _StepBase(BaseModel):
    model_config = ConfigDict(extra="ignore")

    ts: float = Field(0.0, ge=0)

    @property
    def selectors(self) -> list[str]:
        """Primary selector followed by fallbacks, skipping empty ones."""
        primary = getattr(self, "selector", "") or ""
        fallbacks = getattr(self, "fallbacks", None) or []
        return [s for s in [primary, *fallbacks] if s]


class NavigateStep(_StepBase):
    type: Literal["navigate"] = "navigate"
    url: str


class ClickStep(_StepBase):
    type: Literal["click"] = "click"
    selector: str = ""
    fallbacks: Optional[list[str]] = None
    role: Optional[str] = None
    name: Optional[str] = None
    offset: Optional[Offset] = None


class TypeStep(_StepBase):
    type: Literal["type"] = "type"
    selector: str = ""
    text: str = ""


class KeyStep(_StepBase):
    type: Literal["key"] = "key"
    selector: str = ""
    key: str = "Enter"


class ScrollStep(_StepBase):
    type: Literal["scroll"] = "scroll"
    target: Literal["window"] = "window"
    x: int = 0
    y: int = 0


class WaitVisibleStep(_StepBase):
    type: Literal["waitVisible"] = "waitVisible"
    selector: str
    timeout: int = 5000


Step = Annotated[
    Union[NavigateStep, ClickStep, TypeStep, KeyStep, ScrollStep, WaitVisibleStep],
    Field(discriminator="type"),
]

step_adapter: TypeAdapter[Step] = TypeAdapter(Step)


class Trace(BaseModel):
    """A versioned, ordered record of one recording session."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    version: Literal[1] = SUPPORTED_TRACE_VERSION
    meta: TraceMeta = Field(default_factory=TraceMeta)
    steps: list[Step] = Field(min_length=1)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the documented JSON shape (camelCase, no nulls)."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)

    def to_json(self, indent: Optional[int] = 2) -> str:
        return self.model_dump_json(by_alias=True, exclude_none=True, indent=indent)

    @property
    def step_count(self) -> int:
        return len(self.steps)
