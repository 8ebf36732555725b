# models/__init__.py
from .user import User, UserRole
from .project import Project, ProjectStatus, Visibility
from .project_member import ProjectMember, MemberRole
from .task import Task, TaskStatus, TaskPriority, TaskType
from .comment import Comment
