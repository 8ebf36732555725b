# services/access.py
"""Access Control Evaluator.

One table maps (resource, action) to the relationships that grant it. The
evaluator only reads the facts it is handed and never touches storage.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, FrozenSet, Mapping, Optional, Tuple

from models.project_member import MemberRole
from models.user import SELF_EDITABLE_FIELDS
from services.auth import Identity


class Resource(str, Enum):
    PROJECT = "project"
    TASK = "task"
    USER = "user"
    ADMIN = "admin"


class Action(str, Enum):
    CREATE = "create"
    READ = "read"
    UPDATE = "update"
    DELETE = "delete"
    MANAGE = "manage"


class Decision(Enum):
    ALLOW = "allow"
    DENY = "deny"
    SELF_PROTECTED = "self_protected"


@dataclass(frozen=True)
class ProjectFacts:
    owner_id: int
    member_roles: Mapping[int, str] = field(default_factory=dict)

    def is_member(self, user_id: int) -> bool:
        return user_id == self.owner_id or user_id in self.member_roles

    def is_manager(self, user_id: int) -> bool:
        return user_id == self.owner_id or self.member_roles.get(user_id) == MemberRole.MANAGER.value


@dataclass(frozen=True)
class TaskFacts:
    project: ProjectFacts
    assignee_id: Optional[int]
    reporter_id: int


@dataclass(frozen=True)
class UserFacts:
    user_id: int
    changes: FrozenSet[str] = frozenset()
    deactivating: bool = False


Predicate = Callable[[Identity, object], bool]


def authenticated(identity, facts) -> bool:
    return True


def admin(identity, facts) -> bool:
    return identity.is_admin


def project_member(identity, facts: ProjectFacts) -> bool:
    return facts.is_member(identity.user_id)


def project_owner(identity, facts: ProjectFacts) -> bool:
    return facts.owner_id == identity.user_id


def task_project_member(identity, facts: TaskFacts) -> bool:
    return facts.project.is_member(identity.user_id)


# Assignee and reporter rights last only as long as the membership does.
def task_assignee(identity, facts: TaskFacts) -> bool:
    return facts.assignee_id == identity.user_id and task_project_member(identity, facts)


def task_reporter(identity, facts: TaskFacts) -> bool:
    return facts.reporter_id == identity.user_id and task_project_member(identity, facts)


def task_project_manager(identity, facts: TaskFacts) -> bool:
    return facts.project.is_manager(identity.user_id)


def own_account(identity, facts: UserFacts) -> bool:
    return facts.user_id == identity.user_id


def own_profile_fields(identity, facts: UserFacts) -> bool:
    return own_account(identity, facts) and facts.changes <= SELF_EDITABLE_FIELDS


_TASK_EDITORS = (task_assignee, task_reporter, task_project_manager, admin)

RULES: Dict[Tuple[Resource, Action], Tuple[Predicate, ...]] = {
    (Resource.PROJECT, Action.CREATE): (authenticated,),
    (Resource.PROJECT, Action.READ): (project_member, admin),
    (Resource.PROJECT, Action.UPDATE): (project_owner, admin),
    (Resource.PROJECT, Action.DELETE): (project_owner, admin),
    # reporter is the caller unless a manager files it for another member
    (Resource.TASK, Action.CREATE): (task_reporter, task_project_manager),
    (Resource.TASK, Action.READ): (task_project_member, admin),
    (Resource.TASK, Action.UPDATE): _TASK_EDITORS,
    (Resource.TASK, Action.DELETE): _TASK_EDITORS,
    (Resource.USER, Action.READ): (own_account, admin),
    (Resource.USER, Action.UPDATE): (own_profile_fields, admin),
    (Resource.USER, Action.DELETE): (admin,),
    (Resource.ADMIN, Action.MANAGE): (admin,),
}


def _self_protected(identity: Identity, resource: Resource, action: Action, facts) -> bool:
    # Admins may not lock themselves out; regular users are already denied by the table.
    if resource is not Resource.USER or not identity.is_admin or facts.user_id != identity.user_id:
        return False
    return action is Action.DELETE or (action is Action.UPDATE and facts.deactivating)


def evaluate(identity: Identity, resource: Resource, action: Action, facts=None) -> Decision:
    if _self_protected(identity, resource, action, facts):
        return Decision.SELF_PROTECTED
    rule = RULES.get((resource, action), ())
    if any(predicate(identity, facts) for predicate in rule):
        return Decision.ALLOW
    return Decision.DENY
