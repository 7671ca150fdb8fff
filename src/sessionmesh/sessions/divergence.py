# src/sessionmesh/sessions/divergence.py
"""
Divergence detection between descriptors of the same session.

Histories only ever grow by appending, so two descriptors are consistent when
one history is a prefix of the other. Anything else means two servers
appended independently from a common ancestor. This is detected and reported,
never reconciled.
"""

from ..exceptions import DescriptorInvalidError
from ..models import DivergenceReport, SessionDescriptor


def common_prefix_length(left: SessionDescriptor, right: SessionDescriptor) -> int:
    length = 0
    for a, b in zip(left.history, right.history):
        if a != b:
            break
        length += 1
    return length


def detect_divergence(left: SessionDescriptor, right: SessionDescriptor) -> DivergenceReport:
    """
    Compare two descriptors of the same session.

    Raises:
        DescriptorInvalidError: If the descriptors belong to different sessions.
    """
    if left.id != right.id:
        raise DescriptorInvalidError(
            f"Cannot compare descriptors of different sessions ('{left.id}' vs '{right.id}').")
    return DivergenceReport(
        session_id=left.id,
        common_prefix_length=common_prefix_length(left, right),
        left_length=len(left.history),
        right_length=len(right.history),
    )
