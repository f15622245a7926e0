"""Tests for cropbatch.core.resize."""

from __future__ import annotations

import pytest
from hypothesis import given
from hypothesis import strategies as st
from PIL import Image
from pydantic import ValidationError

from cropbatch.core.resize import ResizeMode, ResizeSpec, compute_target_size, resize
from cropbatch.geometry import Size


class TestResizeSpec:
    """Tests for ResizeSpec validation."""

    @pytest.mark.parametrize(
        ("kwargs", "message"),
        [
            ({"mode": ResizeMode.EXACT, "width": 10}, "exact resize requires"),
            ({"mode": ResizeMode.MAX_WIDTH}, "max_width resize requires"),
            ({"mode": ResizeMode.MAX_HEIGHT}, "max_height resize requires"),
            ({"mode": ResizeMode.PERCENTAGE}, "percentage resize requires"),
        ],
    )
    def test_missing_parameters_rejected(self, kwargs: dict[str, object], message: str) -> None:
        """Test each mode demands its own parameters."""
        with pytest.raises(ValidationError, match=message):
            ResizeSpec(**kwargs)  # type: ignore[arg-type]

    def test_rejects_non_positive_dimensions(self) -> None:
        """Test widths must be positive."""
        with pytest.raises(ValidationError):
            ResizeSpec(mode=ResizeMode.MAX_WIDTH, width=0)

    def test_default_is_disabled(self) -> None:
        """Test the default spec leaves images alone."""
        assert not ResizeSpec().is_enabled
        assert ResizeSpec().resample == "lanczos"


class TestComputeTargetSize:
    """Tests for compute_target_size."""

    source = Size(width=400, height=200)

    def test_none_mode(self) -> None:
        """Test disabled resize returns None."""
        assert compute_target_size(self.source, ResizeSpec()) is None

    def test_exact_with_aspect_fits_inside_box(self) -> None:
        """Test exact mode with aspect lock fits inside the requested box."""
        spec = ResizeSpec(mode=ResizeMode.EXACT, width=100, height=100)
        assert compute_target_size(self.source, spec) == Size(width=100, height=50)

    def test_exact_without_aspect_stretches(self) -> None:
        """Test exact mode without aspect lock uses the box as-is."""
        spec = ResizeSpec(
            mode=ResizeMode.EXACT, width=100, height=100, maintain_aspect_ratio=False
        )
        assert compute_target_size(self.source, spec) == Size(width=100, height=100)

    def test_max_width_downscales(self) -> None:
        """Test max_width shrinks wide images proportionally."""
        spec = ResizeSpec(mode=ResizeMode.MAX_WIDTH, width=100)
        assert compute_target_size(self.source, spec) == Size(width=100, height=50)

    def test_max_width_never_upscales(self) -> None:
        """Test images already within the limit are unchanged."""
        spec = ResizeSpec(mode=ResizeMode.MAX_WIDTH, width=1000)
        assert compute_target_size(self.source, spec) is None

    def test_max_height(self) -> None:
        """Test max_height shrinks tall images proportionally."""
        spec = ResizeSpec(mode=ResizeMode.MAX_HEIGHT, height=50)
        assert compute_target_size(self.source, spec) == Size(width=100, height=50)

    def test_percentage(self) -> None:
        """Test percentage scales both axes."""
        spec = ResizeSpec(mode=ResizeMode.PERCENTAGE, percentage=150)
        assert compute_target_size(self.source, spec) == Size(width=600, height=300)

    def test_unchanged_size_returns_none(self) -> None:
        """Test a no-op resize is reported as None."""
        spec = ResizeSpec(mode=ResizeMode.PERCENTAGE, percentage=100)
        assert compute_target_size(self.source, spec) is None

    def test_tiny_results_are_at_least_one_pixel(self) -> None:
        """Test extreme downscales keep at least 1px."""
        spec = ResizeSpec(mode=ResizeMode.MAX_WIDTH, width=1)
        assert compute_target_size(Size(width=1000, height=2), spec) == Size(
            width=1, height=1
        )

    @given(
        width=st.integers(min_value=1, max_value=4000),
        height=st.integers(min_value=1, max_value=4000),
        box_w=st.integers(min_value=1, max_value=2000),
        box_h=st.integers(min_value=1, max_value=2000),
    )
    def test_aspect_locked_exact_fits_box(
        self, width: int, height: int, box_w: int, box_h: int
    ) -> None:
        """Property: aspect-locked exact resize fits the box, touching one side."""
        spec = ResizeSpec(mode=ResizeMode.EXACT, width=box_w, height=box_h)
        target = compute_target_size(Size(width=width, height=height), spec)
        if target is None:
            return
        assert target.width <= box_w
        assert target.height <= box_h
        assert target.width == box_w or target.height == box_h


class TestResize:
    """Tests for resize on pixels."""

    def test_resize_returns_new_image(self) -> None:
        """Test resize produces the computed size."""
        image = Image.new("RGB", (400, 200))
        result = resize(image, ResizeSpec(mode=ResizeMode.MAX_WIDTH, width=100))
        assert result is not None
        assert result.size == (100, 50)

    def test_resize_noop_returns_none(self) -> None:
        """Test disabled resize leaves the caller's image in place."""
        assert resize(Image.new("RGB", (4, 4)), ResizeSpec()) is None
