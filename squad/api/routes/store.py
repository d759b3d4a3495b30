"""
squad.api.routes.store — Entity Store endpoints
================================================

Whole-collection reads and upserting writes for users, tasks and
questions.  Payloads use the camelCase wire format of
:mod:`squad.engine.snapshot`.  ``POST`` upserts by id and never deletes a
record that is absent from the body.
"""

from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Body, Depends
from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from squad.api.deps import get_engine
from squad.database.models import Role, TaskCategory, TaskType
from squad.engine.snapshot import Question, Task, User
from squad.services import store_service

router = APIRouter(tags=["store"])


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------
class WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True)


class UserIn(WireModel):
    id: str
    name: str = Field(min_length=1)
    role: Role = Role.PENDING
    points: int = 0
    level: int | None = None  # accepted for compatibility; always re-derived
    joined_at: datetime | None = None
    device_details: str | None = None
    avatar: str | None = None
    custom_tags: list[str] = Field(default_factory=list)


class TaskIn(WireModel):
    id: str
    title: str = Field(min_length=1)
    description: str | None = None
    points: int = Field(ge=0)
    type: TaskType = TaskType.WEEKLY
    category: TaskCategory = TaskCategory.OTHER
    created_by: str | None = None
    is_group_task: bool = False
    completed_by: list[str] = Field(default_factory=list)
    created_at: datetime | None = None
    expires_at: datetime | None = None


class SolutionIn(WireModel):
    id: str
    author_id: str
    content: str = ""
    votes: list[str] = Field(default_factory=list)
    is_best_answer: bool = False


class QuestionIn(WireModel):
    id: str
    author_id: str
    title: str = Field(min_length=1)
    content: str = ""
    is_interest_check: bool = True
    upvotes: list[str] = Field(default_factory=list)
    downvotes: list[str] = Field(default_factory=list)
    dropped: bool = False
    solutions: list[SolutionIn] = Field(default_factory=list)
    created_at: datetime | None = None
    admin_approved: bool = False
    majority_approved: bool = False
    penalty_applied: bool | None = None

    @model_validator(mode="after")
    def _votes_disjoint(self) -> QuestionIn:
        overlap = set(self.upvotes) & set(self.downvotes)
        if overlap:
            raise ValueError(f"Users voted both up and down: {sorted(overlap)}")
        return self

    def to_wire(self) -> dict:
        data = super().to_wire()
        if data["penaltyApplied"] is None:
            del data["penaltyApplied"]
        return data


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------
@router.get("/users")
def list_users(engine=Depends(get_engine)):
    return [u.to_wire() for u in store_service.get_users(engine)]


@router.post("/users")
def upsert_user(body: UserIn, engine=Depends(get_engine)):
    store_service.replace_users(engine, [User.from_wire(body.to_wire())])
    return {"success": True}


@router.post("/users/batch")
def replace_users(body: list[UserIn], engine=Depends(get_engine)):
    count = store_service.replace_users(engine, [User.from_wire(u.to_wire()) for u in body])
    return {"success": True, "count": count}


# ---------------------------------------------------------------------------
# Tasks
# ---------------------------------------------------------------------------
@router.get("/tasks")
def list_tasks(engine=Depends(get_engine)):
    return [t.to_wire() for t in store_service.get_tasks(engine)]


@router.post("/tasks")
def replace_tasks(
    body: list[TaskIn] | TaskIn = Body(...),
    engine=Depends(get_engine),
):
    items = body if isinstance(body, list) else [body]
    count = store_service.replace_tasks(engine, [Task.from_wire(t.to_wire()) for t in items])
    return {"success": True, "count": count}


# ---------------------------------------------------------------------------
# Questions
# ---------------------------------------------------------------------------
@router.get("/questions")
def list_questions(engine=Depends(get_engine)):
    return [q.to_wire() for q in store_service.get_questions(engine)]


@router.post("/questions")
def replace_questions(
    body: list[QuestionIn] | QuestionIn = Body(...),
    engine=Depends(get_engine),
):
    items = body if isinstance(body, list) else [body]
    count = store_service.replace_questions(
        engine, [Question.from_wire(q.to_wire()) for q in items]
    )
    return {"success": True, "count": count}
