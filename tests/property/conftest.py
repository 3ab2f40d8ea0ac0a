"""Hypothesis strategies for property-based testing."""

from hypothesis import strategies as st


@st.composite
def generate_image_size(draw, max_side: int = 64):
    """Generate a random (width, height) pair."""
    width = draw(st.integers(min_value=1, max_value=max_side))
    height = draw(st.integers(min_value=1, max_value=max_side))
    return (width, height)


@st.composite
def generate_even_size(draw, max_side: int = 32):
    """Generate a (width, height) pair that a yuv420p encoder accepts."""
    width = draw(st.integers(min_value=1, max_value=max_side // 2)) * 2
    height = draw(st.integers(min_value=1, max_value=max_side // 2)) * 2
    return (width, height)


def generate_fps():
    """Frame rates, including ones that do not divide 600."""
    return st.one_of(
        st.sampled_from([1, 6, 12, 24, 25, 30, 60]),
        st.integers(min_value=1, max_value=240),
    )


@st.composite
def generate_supply_script(draw, max_images: int = 12):
    """Generate an image count plus the readiness answers and rejected appends of a sink."""
    n_images = draw(st.integers(min_value=0, max_value=max_images))
    readiness = draw(st.lists(st.booleans(), max_size=3 * max_images))
    reject = draw(st.sets(st.integers(min_value=0, max_value=2 * max_images), max_size=max_images))
    return n_images, readiness, reject
