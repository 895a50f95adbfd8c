"""
Placement transform math.

A duplicated template is realized at its final location by one rigid
transform: a translation from the template's reference point to the requested
position, followed by a uniform scale about that position. Both steps are
skipped when they would be no-ops.
"""

from typing import Optional, Sequence, Union

from ezdxf.math import Matrix44, Vec3

from ..config.settings import DEFAULT_SCALE_TOLERANCE

Point = Union[Vec3, Sequence[float]]


def scale_about(center: Point, factor: float) -> Matrix44:
    """Uniform scale by factor with center as fixed point."""
    c = Vec3(center)
    return Matrix44.chain(
        Matrix44.translate(-c.x, -c.y, -c.z),
        Matrix44.scale(factor),
        Matrix44.translate(c.x, c.y, c.z),
    )


def placement_matrix(
    reference_point: Point,
    position: Point,
    scale: float = 1.0,
    tolerance: float = DEFAULT_SCALE_TOLERANCE,
) -> Optional[Matrix44]:
    """
    Transform moving an instance from reference_point to position at scale.

    Args:
        reference_point: Current insertion point of the duplicated template
        position: Requested insertion point
        scale: Requested uniform scale (relative to the unit-scale template)
        tolerance: |scale - 1| at or below this applies no scaling

    Returns:
        Matrix44, or None when the transform would be the identity
    """
    steps = []

    displacement = Vec3(position) - Vec3(reference_point)
    if displacement.magnitude > 0.0:
        steps.append(Matrix44.translate(displacement.x, displacement.y, displacement.z))

    if abs(scale - 1.0) > tolerance:
        steps.append(scale_about(position, scale))

    if not steps:
        return None
    return Matrix44.chain(*steps)


def uniform_scale_factor(matrix: Matrix44) -> float:
    """Scale factor a uniform-scale transform applies to lengths."""
    return matrix.transform_direction(Vec3(1, 0, 0)).magnitude
