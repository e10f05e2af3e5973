"""Tests for trace data models."""

import pytest
from pydantic import ValidationError

from tracereplay.recording.models import (
    STEP_TYPES,
    ClickStep,
    NavigateStep,
    ScrollStep,
    StepType,
    Trace,
    TraceMeta,
    TypeStep,
    WaitVisibleStep,
    step_adapter,
)


class TestStepModels:
    """Tests for individual step types."""

    def test_step_types_are_closed(self):
        assert STEP_TYPES == {"navigate", "click", "type", "key", "scroll", "waitVisible"}
        assert StepType.WAIT_VISIBLE.value == "waitVisible"

    def test_discriminated_union(self):
        step = step_adapter.validate_python({"type": "scroll", "x": 0, "y": 120, "ts": 1})

        assert isinstance(step, ScrollStep)
        assert step.target == "window"

    def test_selectors_property(self):
        step = ClickStep(selector="#a", fallbacks=["#b", "", "#c"])

        assert step.selectors == ["#a", "#b", "#c"]
        assert ClickStep(fallbacks=["#b"]).selectors == ["#b"]
        assert NavigateStep(url="x").selectors == []

    def test_negative_timestamp_rejected(self):
        with pytest.raises(ValidationError):
            TypeStep(selector="#a", text="x", ts=-0.1)

    def test_wait_visible_default_timeout(self):
        assert WaitVisibleStep(selector="#a").timeout == 5000

    def test_unknown_fields_ignored(self):
        step = step_adapter.validate_python({"type": "key", "selector": "#a", "ts": 0, "extra": 1})

        assert step.key == "Enter"


class TestTrace:
    """Tests for the trace container."""

    def test_requires_at_least_one_step(self):
        with pytest.raises(ValidationError):
            Trace(steps=[])

    def test_meta_accepts_alias_and_name(self):
        assert TraceMeta(userAgent="UA").user_agent == "UA"
        assert TraceMeta(user_agent="UA").user_agent == "UA"

    def test_to_dict_uses_wire_names_and_drops_nulls(self):
        trace = Trace(
            meta=TraceMeta(user_agent="UA"),
            steps=[NavigateStep(url="https://example.com"), ClickStep(selector="#go", ts=0.5)],
        )

        data = trace.to_dict()

        assert data["version"] == 1
        assert data["meta"]["userAgent"] == "UA"
        assert data["steps"][1] == {"type": "click", "selector": "#go", "ts": 0.5}
