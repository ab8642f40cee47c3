"""
Coordinate mapping between the signing UI and PDF content space.

The front-end canvas reports clicks with the origin at the top-left corner
and y growing downwards. PDF content space puts the origin at the bottom-left
with y growing upwards. This is the single place the two are reconciled, so
a stored record's position can always be traced back to the click.
"""

from typing import Tuple

# Mark height compensation so the drawn baseline sits at the clicked point
VERTICAL_INSET = 10


def map_to_content_space(ui_x: float, ui_y: float, page_height: float) -> Tuple[float, float]:
    """
    Convert a UI-space point into page content space.

    x passes through unchanged; y is flipped around the page height and
    shifted down by VERTICAL_INSET.

    Example:
        >>> map_to_content_space(100, 50, 792)
        (100, 732)
    """
    return ui_x, page_height - ui_y - VERTICAL_INSET
