"""Property-based tests for the resize target computation."""

import pytest
from hypothesis import assume, given, settings
from hypothesis import strategies as st

from jpg2png.size_optimizer import compute_target_size
from tests.strategies import dimensions, optional_bounds


@given(
    width=dimensions(),
    height=dimensions(),
    max_width=optional_bounds(),
    max_height=optional_bounds(),
    preserve=st.booleans(),
)
@settings(max_examples=300)
@pytest.mark.property_test
def test_never_enlarges(width, height, max_width, max_height, preserve):
    """Property: No Upscaling

    The target is never larger than the source on either axis and never
    collapses below one pixel.
    """
    target_width, target_height = compute_target_size(
        width, height, max_width, max_height, preserve
    )

    assert 1 <= target_width <= width
    assert 1 <= target_height <= height


@given(
    width=dimensions(),
    height=dimensions(),
    max_width=optional_bounds(),
    max_height=optional_bounds(),
    preserve=st.booleans(),
)
@settings(max_examples=300)
@pytest.mark.property_test
def test_fits_bounds(width, height, max_width, max_height, preserve):
    """Property: Bounding Box

    Every given bound is respected.
    """
    target_width, target_height = compute_target_size(
        width, height, max_width, max_height, preserve
    )

    if max_width is not None:
        assert target_width <= max_width
    if max_height is not None:
        assert target_height <= max_height


@given(
    width=dimensions(),
    height=dimensions(),
    max_width=optional_bounds(),
    max_height=optional_bounds(),
    preserve=st.booleans(),
)
@settings(max_examples=300)
@pytest.mark.property_test
def test_idempotent(width, height, max_width, max_height, preserve):
    """Property: Idempotence

    Resizing an already-fitted size changes nothing.
    """
    first = compute_target_size(width, height, max_width, max_height, preserve)
    assert compute_target_size(*first, max_width, max_height, preserve) == first


@given(width=dimensions(), height=dimensions(), max_width=dimensions(), max_height=dimensions())
@settings(max_examples=300)
@pytest.mark.property_test
def test_preserves_aspect_ratio(width, height, max_width, max_height):
    """Property: Aspect Ratio

    With the aspect ratio preserved, the target's ratio stays within the
    error introduced by rounding each side to whole pixels.
    """
    target_width, target_height = compute_target_size(width, height, max_width, max_height)
    assume(min(target_width, target_height) >= 20)

    assert target_width / target_height == pytest.approx(width / height, rel=0.06)
