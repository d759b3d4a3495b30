"""
tests/test_ledger_council.py — Council Questions, Votes & Solutions
====================================================================
Covers the drop rule (and its one-shot penalty), majority and admin
approval, the solution phase, and best-answer awards.
"""

from __future__ import annotations

from dataclasses import replace

import pytest

from conftest import make_ctx, make_user
from squad.database.models import Role, VoteDirection
from squad.engine import ledger
from squad.engine.actions import (
    AddSolution,
    ApproveQuestion,
    MarkBestAnswer,
    PostQuestion,
    VoteQuestion,
    VoteSolution,
)
from squad.engine.errors import InvalidInput
from squad.engine.ledger import Collection, Outcome
from squad.engine.snapshot import Question, Snapshot, Solution

UP, DOWN = VoteDirection.UP, VoteDirection.DOWN


def _with_question(snapshot: Snapshot, **kw) -> Snapshot:
    question = Question(
        id=kw.pop("id", "q1"),
        author_id=kw.pop("author_id", "hughie"),
        title=kw.pop("title", "Weekend trip?"),
        content=kw.pop("content", "Lake house, Saturday."),
        **kw,
    )
    return Snapshot(snapshot.users, snapshot.tasks, (question, *snapshot.questions))


def _vote(snapshot: Snapshot, voter: str, direction: VoteDirection, qid: str = "q1"):
    return ledger.apply(snapshot, VoteQuestion(qid, direction), voter)


# ===========================================================================
# Posting
# ===========================================================================
class TestPostQuestion:
    def test_member_question_starts_in_interest_check(self, crew: Snapshot):
        ctx = make_ctx("q")()
        result = ledger.apply(crew, PostQuestion("Gym at 6?", "Every weekday."), "hughie", ctx)

        assert result.touched == {Collection.QUESTIONS}
        question = result.snapshot.questions[0]
        assert question.is_interest_check is True
        assert question.upvotes == question.downvotes == question.solutions == ()
        assert question.dropped is False
        assert question.created_at == ctx.now

    def test_admin_question_opens_directly(self, crew: Snapshot):
        result = ledger.apply(crew, PostQuestion("New rule", "No phones."), "admin")
        assert result.snapshot.questions[0].is_interest_check is False

    def test_newest_question_first(self, crew: Snapshot):
        crew = _with_question(crew, id="older")
        result = ledger.apply(crew, PostQuestion("Newer", "text"), "annie")
        assert result.snapshot.questions[1].id == "older"

    @pytest.mark.parametrize("title, content", [("", "x"), ("x", "  ")])
    def test_blank_input(self, crew: Snapshot, title, content):
        with pytest.raises(InvalidInput):
            ledger.apply(crew, PostQuestion(title, content), "annie")


# ===========================================================================
# Voting & drop rule
# ===========================================================================
class TestVoteQuestion:
    def test_vote_records_once(self, crew: Snapshot):
        s = _with_question(crew)
        s = _vote(s, "annie", UP).snapshot
        again = _vote(s, "annie", DOWN)
        assert again.outcome == Outcome.NO_OP
        q = again.snapshot.question("q1")
        assert q.upvotes == ("annie",)
        assert q.downvotes == ()

    def test_missing_question_is_noop(self, crew: Snapshot):
        assert _vote(crew, "annie", UP, "nope").outcome == Outcome.NO_OP

    def test_single_downvote_does_not_drop(self, crew: Snapshot):
        s = _vote(_with_question(crew), "annie", DOWN).snapshot
        assert s.question("q1").dropped is False
        assert s.user("hughie").points == 100

    def test_two_downvotes_drop_and_charge_author_once(self, crew: Snapshot):
        s = _with_question(crew)
        s = _vote(s, "annie", DOWN).snapshot
        result = _vote(s, "frenchie", DOWN)
        s = result.snapshot

        q = s.question("q1")
        assert q.dropped is True
        assert q.is_interest_check is False
        assert q.penalty_applied is True
        assert s.user("hughie").points == 95
        assert result.touched == {Collection.QUESTIONS, Collection.USERS}

    def test_votes_on_dropped_question_are_noop(self, crew: Snapshot):
        s = _with_question(crew)
        s = _vote(s, "annie", DOWN).snapshot
        s = _vote(s, "frenchie", DOWN).snapshot
        late = _vote(s, "admin", DOWN)
        assert late.outcome == Outcome.NO_OP
        assert late.snapshot.user("hughie").points == 95

    def test_repeated_evaluation_never_double_charges(self, crew: Snapshot):
        s = _with_question(crew, downvotes=("annie", "frenchie"))
        s = ledger.evaluate_drop(s, "q1")
        assert s.user("hughie").points == 95
        for _ in range(3):
            s = ledger.evaluate_drop(s, "q1")
        assert s.user("hughie").points == 95

    def test_upvotes_hold_off_drop(self, crew: Snapshot):
        s = _with_question(crew, upvotes=("annie", "admin"))
        s = _vote(s, "frenchie", DOWN).snapshot
        s = _vote(s, "kimiko", DOWN).snapshot
        assert s.question("q1").dropped is False

    def test_penalty_floors_at_zero(self, crew: Snapshot):
        s = _with_question(crew, author_id="frenchie", downvotes=("annie",))
        s = _vote(s, "hughie", DOWN).snapshot
        assert s.user("frenchie").points == 0


class TestMajorityApproval:
    def test_half_of_members_upvoting_graduates_question(self, crew: Snapshot):
        # Three BOY members (hughie, annie, frenchie): 2 upvotes reach half.
        s = _with_question(crew, author_id="annie")
        s = _vote(s, "hughie", UP).snapshot
        assert s.question("q1").is_interest_check is True

        s = _vote(s, "frenchie", UP).snapshot
        q = s.question("q1")
        assert q.majority_approved is True
        assert q.is_interest_check is False
        assert s.user("annie").points == 2505

    def test_bonus_paid_once(self, crew: Snapshot):
        s = _with_question(crew, author_id="annie")
        for voter in ("hughie", "frenchie", "admin"):
            s = _vote(s, voter, UP).snapshot
        assert s.user("annie").points == 2505


class TestApproveQuestion:
    def test_admin_approval(self, crew: Snapshot):
        s = _with_question(crew)
        result = ledger.apply(s, ApproveQuestion("q1"), "admin")
        q = result.snapshot.question("q1")
        assert q.admin_approved is True
        assert q.is_interest_check is False
        assert result.snapshot.user("hughie").points == 105

    def test_second_approval_is_noop(self, crew: Snapshot):
        s = ledger.approve_question(_with_question(crew), "q1").snapshot
        assert ledger.approve_question(s, "q1").outcome == Outcome.NO_OP

    def test_dropped_question_cannot_be_approved(self, crew: Snapshot):
        s = _with_question(crew, dropped=True, is_interest_check=False, penalty_applied=True)
        assert ledger.approve_question(s, "q1").outcome == Outcome.NO_OP


# ===========================================================================
# Solutions
# ===========================================================================
@pytest.fixture
def open_question(crew: Snapshot) -> Snapshot:
    return _with_question(
        crew,
        is_interest_check=False,
        solutions=(
            Solution(id="s1", author_id="annie", content="Take the van"),
            Solution(id="s2", author_id="frenchie", content="Train"),
        ),
    )


class TestSolutions:
    def test_add_solution_appends(self, open_question: Snapshot):
        result = ledger.apply(open_question, AddSolution("q1", "Carpool"), "hughie", make_ctx("s")())
        solutions = result.snapshot.question("q1").solutions
        assert [s.content for s in solutions] == ["Take the van", "Train", "Carpool"]
        assert solutions[-1].author_id == "hughie"

    def test_no_solutions_during_interest_check(self, crew: Snapshot):
        s = _with_question(crew)
        assert ledger.apply(s, AddSolution("q1", "idea"), "annie").outcome == Outcome.NO_OP

    def test_no_solutions_on_dropped_question(self, open_question: Snapshot):
        q = replace(open_question.question("q1"), dropped=True)
        s = open_question.with_question(q)
        assert ledger.apply(s, AddSolution("q1", "idea"), "annie").outcome == Outcome.NO_OP

    def test_blank_solution_rejected(self, open_question: Snapshot):
        with pytest.raises(InvalidInput):
            ledger.apply(open_question, AddSolution("q1", " "), "annie")

    def test_one_solution_vote_per_question(self, open_question: Snapshot):
        s = ledger.apply(open_question, VoteSolution("q1", "s1"), "hughie").snapshot
        other = ledger.apply(s, VoteSolution("q1", "s2"), "hughie")
        assert other.outcome == Outcome.NO_OP
        q = other.snapshot.question("q1")
        assert q.solution("s1").votes == ("hughie",)
        assert q.solution("s2").votes == ()

    def test_vote_missing_solution_is_noop(self, open_question: Snapshot):
        assert ledger.vote_solution(open_question, "hughie", "q1", "zz").outcome == Outcome.NO_OP


class TestBestAnswer:
    def test_marks_and_awards_once(self, open_question: Snapshot):
        result = ledger.apply(open_question, MarkBestAnswer("q1", "s2"), "admin")
        s = result.snapshot
        assert s.question("q1").best_answer.id == "s2"
        assert s.user("frenchie").points == 10
        assert result.touched == {Collection.QUESTIONS, Collection.USERS}

        again = ledger.apply(s, MarkBestAnswer("q1", "s1"), "admin")
        assert again.outcome == Outcome.NO_OP
        assert again.snapshot.user("annie").points == 2500

    def test_unknown_solution_is_noop(self, open_question: Snapshot):
        assert ledger.mark_best_answer(open_question, "q1", "zz").outcome == Outcome.NO_OP


class TestDispatch:
    def test_unknown_action_type(self, crew: Snapshot):
        with pytest.raises(TypeError):
            ledger.apply(crew, object(), "admin")  # type: ignore[arg-type]

    def test_member_count_ignores_pending(self):
        users = (make_user("a"), make_user("b"), make_user("p", Role.PENDING))
        s = _with_question(Snapshot(users=users), author_id="a")
        s = _vote(s, "b", UP).snapshot
        assert s.question("q1").majority_approved is True
