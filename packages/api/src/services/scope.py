# This project was developed with assistance from AI tools.
"""Shared data scope filtering for service queries.

Centralizes the DataScope -> SQL WHERE logic so that each resource service
applies the same rules. Members see only what they own: the requests they
initiated or that were filed for them, and the accounts and loans of
their member record. Staff roles carry ``full_access`` and are not filtered.
"""

from db import Member, Request
from sqlalchemy import or_, select

from ..schemas.auth import DataScope


def apply_data_scope(stmt, scope: DataScope, *, member_fk=None):
    """Apply data scope filtering to a SQLAlchemy query.

    Args:
        stmt: A SQLAlchemy select statement.
        scope: The caller's DataScope.
        member_fk: Column holding the owning member id (e.g. ``Account.member_id``).
            Pass ``None`` when querying Request directly; requests are
            scoped by initiator or by the member they were filed for.

    Returns:
        The filtered statement.
    """
    if not (scope.own_data_only and scope.user_id):
        return stmt
    if member_fk is None:
        own_member_ids = select(Member.id).where(Member.user_id == scope.user_id)
        return stmt.where(
            or_(Request.initiator_id == scope.user_id, Request.member_id.in_(own_member_ids))
        )
    return stmt.join(Member, Member.id == member_fk).where(Member.user_id == scope.user_id)
