"""Tests for cropbatch.geometry.transforms.

Covers:
- Rotation arithmetic
- Pixel remapping for each rotation and flip
- Normalized point mapping agreeing with the pixel remapping
- Rect round trips through transform and inverse
"""

from __future__ import annotations

import pytest
from hypothesis import given
from hypothesis import strategies as st
from PIL import Image

from cropbatch.geometry import GeometricTransform, NormalizedRect, Rotation, Size
from cropbatch.geometry.transforms import apply_transform

_ALL_TRANSFORMS = [
    GeometricTransform(rotation=rotation, flip_horizontal=fh, flip_vertical=fv)
    for rotation in Rotation
    for fh in (False, True)
    for fv in (False, True)
]

RED = (255, 0, 0)
GREEN = (0, 255, 0)
BLUE = (0, 0, 255)
WHITE = (255, 255, 255)


def _corner_colors(image: Image.Image) -> tuple[object, object, object, object]:
    """Return (top-left, top-right, bottom-left, bottom-right) pixels."""
    w, h = image.size
    return (
        image.getpixel((0, 0)),
        image.getpixel((w - 1, 0)),
        image.getpixel((0, h - 1)),
        image.getpixel((w - 1, h - 1)),
    )


class TestRotation:
    """Tests for the Rotation enum."""

    def test_rotated_cw_wraps(self) -> None:
        """Test clockwise steps wrap at 360."""
        assert Rotation.CW_270.rotated_cw() is Rotation.NONE
        assert Rotation.NONE.rotated_cw() is Rotation.CW_90

    def test_rotated_ccw_wraps(self) -> None:
        """Test counter-clockwise steps wrap at 0."""
        assert Rotation.NONE.rotated_ccw() is Rotation.CW_270

    def test_swaps_width_and_height(self) -> None:
        """Test only quarter turns swap dimensions."""
        assert Rotation.CW_90.swaps_width_and_height
        assert Rotation.CW_270.swaps_width_and_height
        assert not Rotation.CW_180.swaps_width_and_height


class TestGeometricTransform:
    """Tests for the GeometricTransform model."""

    def test_identity(self) -> None:
        """Test the default transform is the identity."""
        assert GeometricTransform().is_identity
        assert GeometricTransform.IDENTITY.is_identity
        assert not GeometricTransform(flip_vertical=True).is_identity

    def test_transformed_size(self) -> None:
        """Test quarter turns swap the output size."""
        size = Size(width=40, height=20)
        assert GeometricTransform(rotation=Rotation.CW_90).transformed_size(size) == Size(
            width=20, height=40
        )
        assert GeometricTransform(rotation=Rotation.CW_180).transformed_size(size) == size

    def test_builders_return_new_instances(self) -> None:
        """Test rotate/toggle helpers leave the original untouched."""
        base = GeometricTransform()
        rotated = base.rotate_cw().toggle_flip_horizontal()
        assert base.is_identity
        assert rotated.rotation is Rotation.CW_90
        assert rotated.flip_horizontal
        assert rotated.rotate_ccw().rotation is Rotation.NONE
        assert rotated.toggle_flip_vertical().flip_vertical

    def test_map_point_quarter_turn(self) -> None:
        """Test the top-left corner lands top-right after 90 degrees clockwise."""
        transform = GeometricTransform(rotation=Rotation.CW_90)
        assert transform.map_point(0.0, 0.0) == (1.0, 0.0)
        assert transform.map_point(1.0, 0.0) == (1.0, 1.0)

    @pytest.mark.parametrize("transform", _ALL_TRANSFORMS)
    def test_inverse_map_point_undoes_map_point(self, transform: GeometricTransform) -> None:
        """Test every transform's point mapping is invertible."""
        x, y = transform.map_point(0.2, 0.7)
        back_x, back_y = transform.inverse_map_point(x, y)
        assert back_x == pytest.approx(0.2)
        assert back_y == pytest.approx(0.7)


class TestApplyTransform:
    """Tests for pixel remapping."""

    def test_identity_returns_equal_copy(self, quadrant_image: Image.Image) -> None:
        """Test the identity transform copies pixels unchanged."""
        result = apply_transform(quadrant_image, GeometricTransform())
        assert result is not quadrant_image
        assert result.tobytes() == quadrant_image.tobytes()

    def test_rotate_90_clockwise(self, quadrant_image: Image.Image) -> None:
        """Test 90 degrees clockwise moves top-left to top-right."""
        result = apply_transform(quadrant_image, GeometricTransform(rotation=Rotation.CW_90))
        assert result.size == (20, 40)
        assert _corner_colors(result) == (BLUE, RED, WHITE, GREEN)

    def test_rotate_180(self, quadrant_image: Image.Image) -> None:
        """Test half turn swaps diagonal corners."""
        result = apply_transform(quadrant_image, GeometricTransform(rotation=Rotation.CW_180))
        assert result.size == (40, 20)
        assert _corner_colors(result) == (WHITE, BLUE, GREEN, RED)

    def test_rotate_270_clockwise(self, quadrant_image: Image.Image) -> None:
        """Test 270 degrees clockwise moves top-left to bottom-left."""
        result = apply_transform(quadrant_image, GeometricTransform(rotation=Rotation.CW_270))
        assert result.size == (20, 40)
        assert _corner_colors(result) == (GREEN, WHITE, RED, BLUE)

    def test_flip_horizontal(self, quadrant_image: Image.Image) -> None:
        """Test horizontal flip mirrors left and right."""
        result = apply_transform(quadrant_image, GeometricTransform(flip_horizontal=True))
        assert _corner_colors(result) == (GREEN, RED, WHITE, BLUE)

    def test_flip_vertical(self, quadrant_image: Image.Image) -> None:
        """Test vertical flip mirrors top and bottom."""
        result = apply_transform(quadrant_image, GeometricTransform(flip_vertical=True))
        assert _corner_colors(result) == (BLUE, WHITE, RED, GREEN)

    def test_rotation_applies_before_flip(self, quadrant_image: Image.Image) -> None:
        """Test 90 degrees then horizontal flip."""
        transform = GeometricTransform(rotation=Rotation.CW_90, flip_horizontal=True)
        result = apply_transform(quadrant_image, transform)
        assert _corner_colors(result) == (RED, BLUE, GREEN, WHITE)

    def test_four_quarter_turns_restore_source(self, gradient_image: Image.Image) -> None:
        """Test four clockwise quarter turns are the identity."""
        image = gradient_image
        transform = GeometricTransform(rotation=Rotation.CW_90)
        for _ in range(4):
            image = apply_transform(image, transform)
        assert image.tobytes() == gradient_image.tobytes()

    @pytest.mark.parametrize("transform", _ALL_TRANSFORMS)
    def test_point_mapping_matches_pixels(
        self, gradient_image: Image.Image, transform: GeometricTransform
    ) -> None:
        """Test a pixel lands where map_point says it does."""
        w, h = gradient_image.size
        px, py = 5, 9
        result = apply_transform(gradient_image, transform)

        # Map the pixel centre, then floor into the output grid.
        nx, ny = transform.map_point((px + 0.5) / w, (py + 0.5) / h)
        out_x = int(nx * result.width)
        out_y = int(ny * result.height)
        assert result.getpixel((out_x, out_y)) == gradient_image.getpixel((px, py))


class TestRectMapping:
    """Tests for NormalizedRect transform mapping."""

    def test_rect_after_quarter_turn(self) -> None:
        """Test a rect in the top-left quadrant moves to the top-right."""
        rect = NormalizedRect(x=0.0, y=0.0, width=0.5, height=0.25)
        mapped = rect.applying_transform(GeometricTransform(rotation=Rotation.CW_90))
        assert mapped.x == pytest.approx(0.75)
        assert mapped.y == pytest.approx(0.0)
        assert mapped.width == pytest.approx(0.25)
        assert mapped.height == pytest.approx(0.5)

    @given(
        rotation=st.sampled_from(list(Rotation)),
        flip_h=st.booleans(),
        flip_v=st.booleans(),
        x=st.floats(min_value=0, max_value=0.9),
        y=st.floats(min_value=0, max_value=0.9),
        w=st.floats(min_value=0.01, max_value=0.1),
        h=st.floats(min_value=0.01, max_value=0.1),
    )
    def test_round_trip_restores_rect(  # noqa: PLR0913
        self,
        rotation: Rotation,
        flip_h: bool,
        flip_v: bool,
        x: float,
        y: float,
        w: float,
        h: float,
    ) -> None:
        """Property: inverse(transform(r)) == r within float tolerance."""
        transform = GeometricTransform(
            rotation=rotation, flip_horizontal=flip_h, flip_vertical=flip_v
        )
        rect = NormalizedRect(x=x, y=y, width=w, height=h)
        restored = rect.applying_transform(transform).applying_inverse_transform(transform)
        assert restored.x == pytest.approx(rect.x, abs=1e-9)
        assert restored.y == pytest.approx(rect.y, abs=1e-9)
        assert restored.width == pytest.approx(rect.width, abs=1e-9)
        assert restored.height == pytest.approx(rect.height, abs=1e-9)
