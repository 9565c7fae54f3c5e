"""
Vote tally for a question.

Ballots are folded into one option assignment per voter: a repeated ballot
for the same option changes nothing, a ballot for another option either
replaces the earlier choice or is ignored, depending on the vote-change
policy. Counts are the number of distinct voters per option and must add up
to the question's own vote counter. Weights are the voters' point balances,
live as of the anchor and frozen at the deadline once it has passed.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

from plasa.config.common_settings import VOTE_CHANGE_POLICY
from plasa.data_models.fact_schemas import BallotFact, EntityKind, OptionFact, QuestionDataFact
from plasa.exceptions import MalformedFactError
from plasa.utils.logger import logger

from .points import PointsEngine
from .snapshot import AnchoredReader, fan_out


class VoteChangePolicy(str, Enum):
    REPLACE = "replace"
    REJECT = "reject"


@dataclass(frozen=True)
class QuestionRecord:
    """The facts of one question as read at one anchor."""
    question_id: str
    data: QuestionDataFact
    space: str
    points: str
    options: List[OptionFact]
    ballots: List[BallotFact]
    vote_count: int
    vetoed: bool = False


@dataclass(frozen=True)
class OptionTally:
    count: int
    live_weight: int = 0
    frozen_weight: Optional[int] = None


@dataclass(frozen=True)
class TallyResult:
    per_option: Dict[int, OptionTally]
    total_count: int
    assignments: Dict[str, int] = field(default_factory=dict)


def _malformed(question: QuestionRecord, message: str, field_name: str = "ballots") -> MalformedFactError:
    logger.error(f"[VoteTally] {question.question_id}: {message}")
    return MalformedFactError(
        message, entity_kind=EntityKind.QUESTION.value, entity_id=question.question_id, field=field_name,
    )


class VoteTally:
    """Aggregates per-option vote counts and weighted point totals."""

    def __init__(self, points: PointsEngine, policy: Optional[VoteChangePolicy] = None):
        self.points = points
        self.policy = policy or VoteChangePolicy(VOTE_CHANGE_POLICY)

    def assign(self, question: QuestionRecord) -> Dict[str, int]:
        """
        Fold the question's ballots into one option per voter.

        Raises:
            MalformedFactError: multi-choice ballots, unknown options or
                ballots cast outside [kickoff, deadline)
        """
        assignments: Dict[str, int] = {}
        kickoff, deadline = question.data.kickoff, question.data.deadline

        for ballot in sorted(question.ballots, key=lambda b: b.cast_at):
            option = ballot.option
            if isinstance(option, list):
                if len(option) != 1:
                    raise _malformed(
                        question,
                        f"{question.data.question_type.value} question has a non-single-choice "
                        f"ballot from {ballot.voter}: {option}",
                    )
                option = option[0]
            if not 0 <= option < len(question.options):
                raise _malformed(question, f"Ballot from {ballot.voter} for unknown option {option}")
            if not kickoff <= ballot.cast_at < deadline:
                raise _malformed(
                    question,
                    f"Ballot from {ballot.voter} cast at {ballot.cast_at} outside [{kickoff}, {deadline})",
                )

            current = assignments.get(ballot.voter)
            if current is None or self.policy == VoteChangePolicy.REPLACE:
                assignments[ballot.voter] = option

        return assignments

    def count(self, question: QuestionRecord, assignments: Dict[str, int]) -> List[int]:
        """Distinct voters per option, checked against the question's vote counter."""
        counts = [0] * len(question.options)
        for option in assignments.values():
            counts[option] += 1
        if sum(counts) != question.vote_count:
            raise _malformed(
                question,
                f"Option vote counts {counts} sum to {sum(counts)}, question reports {question.vote_count}",
                field_name="voteCount",
            )
        return counts

    async def tally(self, reader: AnchoredReader, question: QuestionRecord) -> TallyResult:
        """Counts plus live and (after the deadline) frozen weights per option."""
        assignments = self.assign(question)
        counts = self.count(question, assignments)
        voters = sorted(assignments)
        deadline = question.data.deadline

        live = await fan_out(*(self.points.balance(reader, question.points, voter) for voter in voters))
        frozen: Optional[List[int]] = None
        if reader.anchor.timestamp >= deadline:
            frozen = await fan_out(
                *(self.points.balance_at(reader, question.points, voter, deadline) for voter in voters)
            )

        live_weights = [0] * len(question.options)
        frozen_weights = [0] * len(question.options)
        for position, voter in enumerate(voters):
            option = assignments[voter]
            live_weights[option] += live[position]
            if frozen is not None:
                frozen_weights[option] += frozen[position]

        per_option = {
            index: OptionTally(
                count=counts[index],
                live_weight=live_weights[index],
                frozen_weight=frozen_weights[index] if frozen is not None else None,
            )
            for index in range(len(question.options))
        }
        return TallyResult(per_option=per_option, total_count=sum(counts), assignments=assignments)
