"""
tests/test_ledger_tasks.py — Task Creation & Claim Redistribution
==================================================================
Group tasks split a fixed pool evenly across every completer; each new
claim rebalances prior completers in the same transform.
"""

from __future__ import annotations

import pytest

from conftest import make_ctx, make_user
from squad.database.models import Role, TaskCategory, TaskType
from squad.engine import ledger
from squad.engine.actions import ClaimTask, CreateTask
from squad.engine.errors import InvalidInput
from squad.engine.ledger import Collection, Outcome, group_shares
from squad.engine.snapshot import Snapshot, Task


def _with_task(snapshot: Snapshot, **kw) -> Snapshot:
    task = Task(
        id=kw.pop("id", "t1"),
        title=kw.pop("title", "Leg day"),
        points=kw.pop("points", 100),
        **kw,
    )
    return Snapshot(snapshot.users, (task, *snapshot.tasks), snapshot.questions)


def _points(snapshot: Snapshot, *ids: str) -> list[int]:
    return [snapshot.user(i).points for i in ids]


# ===========================================================================
# Create
# ===========================================================================
class TestCreateTask:
    def test_new_task_is_prepended(self, crew: Snapshot):
        crew = _with_task(crew, id="old")
        ctx = make_ctx("t")()
        action = CreateTask(
            title="  Ship the MVP ",
            points=300,
            type=TaskType.LONG_TERM,
            category=TaskCategory.CODING,
            is_group_task=True,
        )
        result = ledger.apply(crew, action, "admin", ctx)

        assert result.touched == {Collection.TASKS}
        task = result.snapshot.tasks[0]
        assert task.title == "Ship the MVP"
        assert task.points == 300
        assert task.created_by == "admin"
        assert task.completed_by == ()
        assert task.created_at == ctx.now
        assert result.snapshot.tasks[1].id == "old"

    @pytest.mark.parametrize("title, points", [("", 10), ("Run", 0), ("Run", -5)])
    def test_invalid_task(self, crew: Snapshot, title, points):
        with pytest.raises(InvalidInput):
            ledger.apply(crew, CreateTask(title=title, points=points), "admin")


# ===========================================================================
# Individual claims
# ===========================================================================
class TestIndividualClaim:
    def test_claim_pays_full_points(self, crew: Snapshot):
        crew = _with_task(crew, points=250)
        result = ledger.apply(crew, ClaimTask("t1"), "hughie")

        assert result.touched == {Collection.TASKS, Collection.USERS}
        assert result.snapshot.user("hughie").points == 350
        assert result.snapshot.task("t1").completed_by == ("hughie",)

    def test_second_claim_is_noop(self, crew: Snapshot):
        crew = _with_task(crew)
        once = ledger.claim_task(crew, "hughie", "t1").snapshot
        again = ledger.claim_task(once, "hughie", "t1")
        assert again.outcome == Outcome.NO_OP
        assert again.snapshot.user("hughie").points == 200

    def test_missing_task_or_user_is_noop(self, crew: Snapshot):
        crew = _with_task(crew)
        assert ledger.claim_task(crew, "hughie", "nope").outcome == Outcome.NO_OP
        assert ledger.claim_task(crew, "ghost", "t1").outcome == Outcome.NO_OP

    def test_claim_crosses_level(self, crew: Snapshot):
        crew = _with_task(crew, points=950)
        after = ledger.claim_task(crew, "hughie", "t1").snapshot
        assert after.user("hughie").level == 2


# ===========================================================================
# Group claims
# ===========================================================================
class TestGroupShares:
    @pytest.mark.parametrize(
        "pool, prior, expected",
        [(100, 0, (100, 0)), (100, 1, (50, 100)), (100, 2, (33, 50)), (7, 3, (1, 2))],
    )
    def test_shares(self, pool, prior, expected):
        assert group_shares(pool, prior) == expected


class TestGroupClaim:
    @pytest.fixture
    def squad(self) -> Snapshot:
        users = tuple(make_user(uid, minutes=i) for i, uid in enumerate("abcd"))
        return _with_task(Snapshot(users=users), points=100, is_group_task=True)

    def test_three_claims_split_pool(self, squad: Snapshot):
        s = ledger.claim_task(squad, "a", "t1").snapshot
        assert _points(s, "a") == [100]

        s = ledger.claim_task(s, "b", "t1").snapshot
        assert _points(s, "a", "b") == [50, 50]

        s = ledger.claim_task(s, "c", "t1").snapshot
        assert _points(s, "a", "b", "c") == [33, 33, 33]
        assert s.task("t1").completed_by == ("a", "b", "c")

    def test_total_never_exceeds_pool(self, squad: Snapshot):
        s = squad
        for uid in "abcd":
            s = ledger.claim_task(s, uid, "t1").snapshot
            paid = sum(_points(s, *s.task("t1").completed_by))
            assert paid <= 100
        assert _points(s, "a", "b", "c", "d") == [25, 25, 25, 25]

    def test_prior_completers_updated_in_same_transform(self, squad: Snapshot):
        s = ledger.claim_task(squad, "a", "t1").snapshot
        result = ledger.claim_task(s, "b", "t1")
        # One transform both records the claim and rebalances "a".
        assert result.touched == {Collection.TASKS, Collection.USERS}
        assert result.snapshot.user("a").points == 50

    def test_points_never_go_negative(self):
        # Prior completer already spent below the old share (e.g. drop penalty).
        users = (make_user("a", points=0), make_user("b"))
        s = _with_task(
            Snapshot(users=users), points=100, is_group_task=True, completed_by=("a",)
        )
        after = ledger.claim_task(s, "b", "t1").snapshot
        assert after.user("a").points == 0
        assert after.user("b").points == 50

    def test_pending_user_claim_is_ledger_level_only(self, squad: Snapshot):
        # The ledger does not check roles; the gate does.
        squad = squad.with_user(make_user("p", Role.PENDING))
        assert ledger.claim_task(squad, "p", "t1").applied
