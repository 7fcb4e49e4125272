"""
Ballot validation and tally computation.

Pure functions of (poll definition, ballots); no database access.

Ranked scoring is a Borda count over the poll's option count ``n``: the
option at 1-based position ``k`` of a ballot earns ``n - k`` points and
options absent from a ballot earn nothing from it. Ties are reported in
``winners``, never broken.
"""

from collections.abc import Iterable, Sequence
from uuid import UUID

from ..schemas.tools import OptionResult, TallyResult, VotingMode, VotingTool
from .errors import InvalidChoiceSetError


def validate_choices(choices: Sequence[str], mode: VotingMode, option_ids: Sequence[str]) -> None:
    """Raise InvalidChoiceSetError unless ``choices`` fits ``mode``.

    - single: exactly one known option
    - approval: one or more distinct known options, order irrelevant
    - ranked: distinct known options in preference order (any subset)
    """
    if not choices:
        raise InvalidChoiceSetError("A ballot needs at least one choice")

    known = set(option_ids)
    unknown = [c for c in choices if c not in known]
    if unknown:
        raise InvalidChoiceSetError(f"Unknown option id(s): {', '.join(unknown)}")

    if len(set(choices)) != len(choices):
        raise InvalidChoiceSetError("Duplicate choices are not allowed")

    if mode == VotingMode.SINGLE and len(choices) != 1:
        raise InvalidChoiceSetError("Single mode requires exactly one choice")


def ranked_points(position: int, option_count: int) -> int:
    """Points for the option at 1-based ``position`` on a poll of ``option_count``."""
    return option_count - position


def compute_tally(
    tool: VotingTool,
    ballots: Iterable[tuple[UUID, Sequence[str]]],
) -> TallyResult:
    """Tally ``(member_id, choices)`` ballots for a poll.

    Voter ids are attached per option unless the poll is anonymous; the
    ledger keeps them either way.
    """
    option_ids = tool.option_ids
    counts = {option_id: 0 for option_id in option_ids}
    scores = {option_id: 0 for option_id in option_ids}
    voters: dict[str, list[UUID]] = {option_id: [] for option_id in option_ids}
    n = len(option_ids)
    total = 0

    for member_id, choices in ballots:
        total += 1
        for index, choice in enumerate(choices):
            if choice not in counts:
                # Option ids are fixed at creation; stale ids cannot be scored
                continue
            counts[choice] += 1
            voters[choice].append(member_id)
            if tool.mode == VotingMode.RANKED:
                scores[choice] += ranked_points(index + 1, n)

    metric = scores if tool.mode == VotingMode.RANKED else counts
    best = max(metric.values(), default=0)
    winners = [option_id for option_id in option_ids if best > 0 and metric[option_id] == best]

    results = [
        OptionResult(
            option_id=option.id,
            label=option.label,
            count=counts[option.id],
            score=scores[option.id],
            voters=None if tool.is_anonymous else voters[option.id],
        )
        for option in tool.options
    ]

    return TallyResult(
        mode=tool.mode,
        total_ballots=total,
        results=results,
        winners=winners,
        is_tie=len(winners) > 1,
    )
