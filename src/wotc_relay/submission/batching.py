"""Batch planning for ready screenings."""

from collections.abc import Mapping
from uuid import UUID

from wotc_relay.collaborators import ReadyScreening

from .types import PlannedBatch

DEFAULT_MAX_BATCH_SIZE = 100
URGENT_PRIORITY = 8


def plan_batches(
    screenings: list[ReadyScreening],
    max_batch_size: int = DEFAULT_MAX_BATCH_SIZE,
    *,
    state_batch_sizes: Mapping[str, int] | None = None,
) -> list[PlannedBatch]:
    """Group screenings into submission batches.

    Screenings are grouped by (state, employer) and split so no batch
    exceeds the state's batch size. Urgent screenings (priority >= 8) each
    get a single-record batch so they are not held behind a large file.
    Within a group higher priority goes first; batches are returned highest
    priority first, otherwise in input order.

    Args:
        screenings: Ready screenings, any mix of states and employers.
        max_batch_size: Batch size for states without an override.
        state_batch_sizes: Per-state batch size overrides.

    Raises:
        ValueError: If a batch size is below 1.
    """
    if max_batch_size < 1:
        raise ValueError("max_batch_size must be at least 1")

    groups: dict[tuple[str, UUID], list[ReadyScreening]] = {}
    for screening in screenings:
        groups.setdefault((screening.state_code.upper(), screening.employer_id), []).append(
            screening
        )

    batches: list[PlannedBatch] = []
    for (state_code, employer_id), items in groups.items():
        size = (state_batch_sizes or {}).get(state_code, max_batch_size)
        if size < 1:
            raise ValueError(f"batch size for {state_code} must be at least 1")

        ordered = sorted(items, key=lambda s: -s.priority)
        urgent = [s for s in ordered if s.priority >= URGENT_PRIORITY]
        regular = [s for s in ordered if s.priority < URGENT_PRIORITY]

        for screening in urgent:
            batches.append(
                PlannedBatch(
                    employer_id=employer_id,
                    state_code=state_code,
                    screening_ids=(screening.screening_id,),
                    priority=screening.priority,
                    urgent=True,
                )
            )
        for start in range(0, len(regular), size):
            chunk = regular[start : start + size]
            batches.append(
                PlannedBatch(
                    employer_id=employer_id,
                    state_code=state_code,
                    screening_ids=tuple(s.screening_id for s in chunk),
                    priority=max(s.priority for s in chunk),
                )
            )

    batches.sort(key=lambda b: -b.priority)
    return batches
