"""Status classifier — noise-suppressed single-threshold rule.

Small changes in the rotation count (below NOISE_THRESHOLD) are treated as
no change so the status does not flicker. The status is then DANGER only when
the adjusted flow exceeds SAFE_THRESHOLD. There is deliberately no
spike-magnitude trigger: a jump from 0 after a device restart is not a surge.
"""

from __future__ import annotations

from dataclasses import dataclass

from flowguard.core.models import Status

NOISE_THRESHOLD = 2
SAFE_THRESHOLD = 120


@dataclass(frozen=True)
class Classification:
    status: Status
    adjusted_flow: int


def classify(
    current_flow: int,
    previous_flow: int,
    *,
    noise_threshold: int = NOISE_THRESHOLD,
    safe_threshold: int = SAFE_THRESHOLD,
) -> Classification:
    """Classify a flow value against the previously persisted one.

    ``previous_flow`` must come from the stored latest record, never from
    process memory.
    """
    if abs(current_flow - previous_flow) < noise_threshold:
        adjusted = previous_flow
    else:
        adjusted = current_flow

    status = Status.DANGER if adjusted > safe_threshold else Status.SAFE
    return Classification(status=status, adjusted_flow=adjusted)
