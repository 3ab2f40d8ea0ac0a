"""Property tests for scale-to-fit placement."""

import pytest
from hypothesis import given, settings

from stillreel.rendering.rasterizer import compute_fit_rect
from tests.property.conftest import generate_image_size

pytestmark = pytest.mark.property


@given(source=generate_image_size(max_side=4000), target=generate_image_size(max_side=2000))
@settings(max_examples=200)
def test_fit_stays_inside_target(source, target):
    rect = compute_fit_rect(source, target)
    assert 1 <= rect.width <= target[0]
    assert 1 <= rect.height <= target[1]
    assert rect.x >= 0 and rect.y >= 0
    assert rect.x + rect.width <= target[0]
    assert rect.y + rect.height <= target[1]


@given(source=generate_image_size(max_side=4000), target=generate_image_size(max_side=2000))
@settings(max_examples=200)
def test_fit_touches_one_axis(source, target):
    rect = compute_fit_rect(source, target)
    assert rect.width == target[0] or rect.height == target[1]


@given(source=generate_image_size(max_side=4000), target=generate_image_size(max_side=2000))
@settings(max_examples=200)
def test_fit_is_centered(source, target):
    rect = compute_fit_rect(source, target)
    left, right = rect.x, target[0] - rect.x - rect.width
    top, bottom = rect.y, target[1] - rect.y - rect.height
    assert 0 <= right - left <= 1
    assert 0 <= bottom - top <= 1


@given(source=generate_image_size(max_side=4000), target=generate_image_size(max_side=2000))
@settings(max_examples=200)
def test_fit_preserves_aspect(source, target):
    rect = compute_fit_rect(source, target)
    # Rounding to whole pixels moves each side by at most half a pixel.
    assert rect.width == 1 or abs(rect.width - source[0] * rect.scale) <= 0.5 + 1e-9
    assert rect.height == 1 or abs(rect.height - source[1] * rect.scale) <= 0.5 + 1e-9
