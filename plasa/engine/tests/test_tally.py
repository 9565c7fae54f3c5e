"""Unit tests for ballot folding, vote counts and weighted tallies."""
import pytest
from pydantic import ValidationError

from ...data_models.fact_schemas import BallotFact, EntityKind, OptionFact, QuestionDataFact, QuestionType
from ...exceptions import MalformedFactError
from ...facts.demo_ledger import ALICE, BOB, FIXED_QUESTION, FOLLOW_AT, OPEN_QUESTION, POINTS, SPACE
from ..assembler import ViewAssembler
from ..points import PointsEngine
from ..snapshot import AnchorCache, AnchoredReader
from ..tally import QuestionRecord, VoteChangePolicy, VoteTally

KICKOFF = 100
DEADLINE = 200


def make_question(ballots, vote_count, option_count=3, question_type=QuestionType.FIXED):
    return QuestionRecord(
        question_id="0xq",
        data=QuestionDataFact(
            contract_address="0xq",
            question_type=question_type,
            title="Q",
            creator=ALICE,
            kickoff=KICKOFF,
            deadline=DEADLINE,
        ),
        space=SPACE,
        points=POINTS,
        options=[OptionFact(title=f"O{i + 1}", proposer=ALICE) for i in range(option_count)],
        ballots=[BallotFact(**ballot) for ballot in ballots],
        vote_count=vote_count,
    )


def ballots_for(counts):
    """One distinct voter per vote, option by option."""
    ballots = []
    for option, count in enumerate(counts):
        for i in range(count):
            ballots.append({"voter": f"0x{option:02x}{i:06x}", "option": option, "castAt": KICKOFF})
    return ballots


class TestVoteCount:
    """Test per-option counts against the question's counter."""

    def setup_method(self):
        self.tally = VoteTally(PointsEngine(AnchorCache()), VoteChangePolicy.REPLACE)

    def test_counts_add_up(self):
        """850 + 600 + 50 voters match a voteCount of 1500."""
        question = make_question(ballots_for([850, 600, 50]), vote_count=1500)
        assert self.tally.count(question, self.tally.assign(question)) == [850, 600, 50]

    @pytest.mark.parametrize("counts", [[850, 600, 49], [850, 601, 50], [0, 0, 0]])
    def test_mismatched_counts_rejected(self, counts):
        """Any per-option sum other than 1500 is malformed."""
        question = make_question(ballots_for(counts), vote_count=1500)
        with pytest.raises(MalformedFactError) as exc_info:
            self.tally.count(question, self.tally.assign(question))
        assert exc_info.value.field == "voteCount"


class TestAssign:
    """Test ballot folding."""

    def test_replace_policy_keeps_latest_choice(self):
        """With replace, a later ballot for another option wins."""
        tally = VoteTally(PointsEngine(AnchorCache()), VoteChangePolicy.REPLACE)
        question = make_question([
            {"voter": BOB, "option": 1, "castAt": 150},
            {"voter": BOB, "option": 0, "castAt": 120},
        ], vote_count=1)
        assert tally.assign(question) == {BOB: 1}

    def test_reject_policy_keeps_first_choice(self):
        """With reject, the first ballot stands."""
        tally = VoteTally(PointsEngine(AnchorCache()), VoteChangePolicy.REJECT)
        question = make_question([
            {"voter": BOB, "option": 1, "castAt": 150},
            {"voter": BOB, "option": 0, "castAt": 120},
        ], vote_count=1)
        assert tally.assign(question) == {BOB: 0}

    def test_repeated_ballot_counts_once(self):
        """A voter voting twice for the same option is one vote."""
        tally = VoteTally(PointsEngine(AnchorCache()), VoteChangePolicy.REPLACE)
        question = make_question([
            {"voter": ALICE, "option": 2, "castAt": 110},
            {"voter": ALICE.upper().replace("0X", "0x"), "option": 2, "castAt": 130},
        ], vote_count=1)
        assert tally.count(question, tally.assign(question)) == [0, 0, 1]

    def test_single_element_list_is_a_single_choice(self):
        tally = VoteTally(PointsEngine(AnchorCache()), VoteChangePolicy.REPLACE)
        question = make_question([{"voter": ALICE, "option": [1], "castAt": 110}], vote_count=1)
        assert tally.assign(question) == {ALICE: 1}

    @pytest.mark.parametrize("question_type", [QuestionType.FIXED, QuestionType.OPEN])
    def test_multi_choice_ballot_is_malformed(self, question_type):
        """Both variants are single choice."""
        tally = VoteTally(PointsEngine(AnchorCache()), VoteChangePolicy.REPLACE)
        question = make_question(
            [{"voter": ALICE, "option": [0, 1], "castAt": 110}], vote_count=1, question_type=question_type
        )
        with pytest.raises(MalformedFactError):
            tally.assign(question)

    def test_unknown_option_is_malformed(self):
        tally = VoteTally(PointsEngine(AnchorCache()), VoteChangePolicy.REPLACE)
        question = make_question([{"voter": ALICE, "option": 3, "castAt": 110}], vote_count=1)
        with pytest.raises(MalformedFactError):
            tally.assign(question)

    @pytest.mark.parametrize("cast_at", [KICKOFF - 1, DEADLINE])
    def test_ballot_outside_window_is_malformed(self, cast_at):
        """Ballots must be cast in [kickoff, deadline)."""
        tally = VoteTally(PointsEngine(AnchorCache()), VoteChangePolicy.REPLACE)
        question = make_question([{"voter": ALICE, "option": 0, "castAt": cast_at}], vote_count=1)
        with pytest.raises(MalformedFactError):
            tally.assign(question)


class TestFactTypes:
    """Test that ballot and option facts are never coerced."""

    @pytest.mark.parametrize("option", [True, False, "1", 1.0, [True]])
    def test_non_integer_option_is_rejected(self, option):
        """A boolean or string option is not read as an option index."""
        with pytest.raises(ValidationError):
            BallotFact(voter=ALICE, option=option, cast_at=KICKOFF)

    @pytest.mark.parametrize("vetoed", ["true", 1, 0])
    def test_non_boolean_veto_is_rejected(self, vetoed):
        with pytest.raises(ValidationError):
            OptionFact(title="O1", proposer=ALICE, vetoed=vetoed)

    @pytest.mark.asyncio
    async def test_boolean_option_in_ledger_is_malformed(self, ledger, policy):
        """A ballot for option True fails the question read instead of counting for option 1."""
        ledger.commit(ledger.latest.timestamp + 1, {
            (EntityKind.QUESTION, FIXED_QUESTION, "ballots"): [
                {"voter": ALICE, "option": True, "castAt": FOLLOW_AT},
                {"voter": BOB, "option": 1, "castAt": FOLLOW_AT},
            ],
        })
        assembler = ViewAssembler(AnchorCache(), vote_change_policy=VoteChangePolicy.REPLACE)
        reader = AnchoredReader(ledger, ledger.latest, policy)
        with pytest.raises(MalformedFactError) as exc_info:
            await assembler.question_record(reader, FIXED_QUESTION)
        assert exc_info.value.field == "ballots"

    @pytest.mark.asyncio
    async def test_string_veto_in_ledger_is_malformed(self, ledger, policy):
        ledger.commit(ledger.latest.timestamp + 1, {
            (EntityKind.QUESTION, OPEN_QUESTION, "options"): [
                {"title": "Plasa Hour", "description": "", "proposer": BOB},
                {"title": "Spam", "description": "", "proposer": ALICE, "vetoed": "true"},
            ],
        })
        assembler = ViewAssembler(AnchorCache(), vote_change_policy=VoteChangePolicy.REPLACE)
        reader = AnchoredReader(ledger, ledger.latest, policy)
        with pytest.raises(MalformedFactError) as exc_info:
            await assembler.question_record(reader, OPEN_QUESTION)
        assert exc_info.value.field == "options"


class TestWeightedTally:
    """Test weights against the demo ledger."""

    @pytest.mark.asyncio
    async def test_closed_question_has_frozen_weights(self, ledger, policy):
        """After the deadline, weights are reported live and as of the deadline."""
        assembler = ViewAssembler(AnchorCache(), vote_change_policy=VoteChangePolicy.REPLACE)
        reader = AnchoredReader(ledger, ledger.latest, policy)
        question = await assembler.question_record(reader, FIXED_QUESTION)

        result = await assembler.tally.tally(reader, question)
        assert result.total_count == 2
        assert result.per_option[0].count == 1
        assert result.per_option[0].live_weight == 900
        assert result.per_option[0].frozen_weight == 500
        assert result.per_option[1].live_weight == 300
        assert result.per_option[1].frozen_weight == 300
        assert result.per_option[2].count == 0
        assert result.per_option[2].frozen_weight == 0

    @pytest.mark.asyncio
    async def test_open_question_has_no_frozen_weights(self, ledger, policy):
        """Before the deadline nothing is frozen."""
        assembler = ViewAssembler(AnchorCache(), vote_change_policy=VoteChangePolicy.REPLACE)
        reader = AnchoredReader(ledger, ledger.latest, policy)
        question = await assembler.question_record(reader, OPEN_QUESTION)

        result = await assembler.tally.tally(reader, question)
        assert result.per_option[0].live_weight == 200
        assert result.per_option[0].frozen_weight is None
        assert result.per_option[1].count == 0

    @pytest.mark.asyncio
    async def test_weights_are_repeatable(self, ledger, policy):
        """Two tallies at the same anchor agree exactly."""
        assembler = ViewAssembler(AnchorCache(), vote_change_policy=VoteChangePolicy.REPLACE)
        first_reader = AnchoredReader(ledger, ledger.latest, policy)
        second_reader = AnchoredReader(ledger, ledger.latest, policy)
        first = await assembler.tally.tally(first_reader, await assembler.question_record(first_reader, FIXED_QUESTION))
        second = await assembler.tally.tally(second_reader, await assembler.question_record(second_reader, FIXED_QUESTION))
        assert first == second
