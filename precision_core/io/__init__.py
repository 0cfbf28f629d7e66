"""
I/O Module: Capability sources, sample adapters, output stream.

- PositionSource / MotionSource: platform capability interfaces
- position_sample_from_event / MotionSnapshot: raw input normalization
- LocationStream: bounded, closable output queue (drops oldest)
- Scripted sources + ManualClock: deterministic replay
"""

from .sources import (
    PositionSource,
    MotionSource,
    Subscription,
)
from .adapters import (
    MotionSnapshot,
    position_sample_from_event,
    fill_missing_kinematics,
    rotation_matrix_from_field,
    rotation_matrix_from_vector,
    orientation_from_rotation,
)
from .stream import LocationStream
from .scripted import (
    ManualClock,
    ScriptedPositionSource,
    ScriptedMotionSource,
)

__all__ = [
    'PositionSource',
    'MotionSource',
    'Subscription',
    'MotionSnapshot',
    'position_sample_from_event',
    'fill_missing_kinematics',
    'rotation_matrix_from_field',
    'rotation_matrix_from_vector',
    'orientation_from_rotation',
    'LocationStream',
    'ManualClock',
    'ScriptedPositionSource',
    'ScriptedMotionSource',
]
