# services/serializers.py
"""Outbound views: plain dicts with referenced users and projects resolved.

Rows are loaded in batches per call so a page of tasks costs a fixed number
of queries regardless of its size.
"""

from __future__ import annotations

from typing import Dict, Iterable, List, Optional

from models import Comment, Project, ProjectMember, Task, User


def user_ref(u: Optional[User]) -> Optional[dict]:
    if u is None:
        return None
    return {"id": u.id, "name": u.name, "email": u.email, "avatar": u.avatar}


def user_view(u: User) -> dict:
    return {
        "id": u.id,
        "name": u.name,
        "email": u.email,
        "avatar": u.avatar,
        "role": u.role,
        "is_active": u.is_active,
        "created_at": u.created_at,
        "updated_at": u.updated_at,
    }


def _member_view(m: ProjectMember, users: Dict[int, User]) -> dict:
    u = users.get(m.user_id)
    return {
        "id": m.user_id,
        "name": u.name if u else "",
        "email": u.email if u else "",
        "avatar": u.avatar if u else None,
        "role": m.role,
        "joined_at": m.joined_at,
    }


def project_views(store, projects: Iterable[Project]) -> List[dict]:
    projects = list(projects)
    members = store.members_of([p.id for p in projects])
    user_ids = {p.owner_id for p in projects} | {m.user_id for ms in members.values() for m in ms}
    users = store.users_by_ids(user_ids)
    return [
        {
            "id": p.id,
            "key": p.key,
            "name": p.name,
            "description": p.description,
            "status": p.status,
            "visibility": p.visibility,
            "tags": list(p.tags or []),
            "owner_id": p.owner_id,
            "owner": user_ref(users.get(p.owner_id)),
            "members": [_member_view(m, users) for m in members.get(p.id, [])],
            "created_at": p.created_at,
            "updated_at": p.updated_at,
        }
        for p in projects
    ]


def _comment_view(c: Comment, users: Dict[int, User]) -> dict:
    return {
        "id": c.id,
        "content": c.content,
        "author_id": c.author_id,
        "author": user_ref(users.get(c.author_id)),
        "task_id": c.task_id,
        "created_at": c.created_at,
        "updated_at": c.updated_at,
    }


def task_views(store, tasks: Iterable[Task]) -> List[dict]:
    tasks = list(tasks)
    comments = store.comments_for([t.id for t in tasks])
    projects = store.projects_by_ids({t.project_id for t in tasks})
    user_ids = {t.assignee_id for t in tasks} | {t.reporter_id for t in tasks}
    user_ids |= {c.author_id for cs in comments.values() for c in cs}
    users = store.users_by_ids(user_ids)
    out = []
    for t in tasks:
        p = projects.get(t.project_id)
        out.append({
            "id": t.id,
            "title": t.title,
            "description": t.description,
            "status": t.status,
            "priority": t.priority,
            "type": t.type,
            "project_id": t.project_id,
            "project": {"id": p.id, "name": p.name, "key": p.key} if p else None,
            "assignee_id": t.assignee_id,
            "assignee": user_ref(users.get(t.assignee_id)),
            "reporter_id": t.reporter_id,
            "reporter": user_ref(users.get(t.reporter_id)),
            "due_date": t.due_date,
            "estimated_hours": t.estimated_hours,
            "actual_hours": t.actual_hours,
            "labels": list(t.labels or []),
            "comments": [_comment_view(c, users) for c in comments.get(t.id, [])],
            "created_at": t.created_at,
            "updated_at": t.updated_at,
        })
    return out


def page_view(page, items: List[dict]) -> dict:
    return {
        "items": items,
        "pagination": {
            "page": page.page,
            "limit": page.limit,
            "total": page.total,
            "total_pages": page.total_pages,
        },
    }
