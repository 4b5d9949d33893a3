from typing import Iterable, List

from app.models.challenge import Milestone, Participant


def detect_milestones(
    participant: Participant, milestones: Iterable[Milestone]
) -> List[Milestone]:
    """
    Milestones newly crossed by the participant's current value.

    Each returned threshold is recorded in milestones_reached, so it is never
    returned again for this participant.
    """
    reached = set(participant.milestones_reached)
    current = participant.progress.current_value

    crossed = []
    for milestone in sorted(milestones, key=lambda m: m.value):
        if milestone.value <= current and milestone.value not in reached:
            crossed.append(milestone)
            reached.add(milestone.value)

    if crossed:
        participant.milestones_reached = participant.milestones_reached + [
            m.value for m in crossed
        ]
    return crossed
