"""
Owner-scope predicate shared by every resource query.

A principal sees the rows it created plus the rows attributed to its company.
The company reference is the one stored on the row at creation time; it is
never resolved again through the user table.
"""
import uuid
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import or_


@dataclass(frozen=True)
class Principal:
    user_id: uuid.UUID
    company_id: Optional[uuid.UUID] = None

    @classmethod
    def for_user(cls, user) -> "Principal":
        return cls(user_id=user.id, company_id=user.company_id)

    @property
    def scope_key(self) -> str:
        """Key of the numbering sequence this principal draws from."""
        if self.company_id is not None:
            return f"company:{self.company_id}"
        return f"user:{self.user_id}"


def owner_filter(model, principal: Principal):
    """created_by == me OR company_id == my company (company branch only when I have one)."""
    clauses = [model.created_by == principal.user_id]
    if principal.company_id is not None:
        clauses.append(model.company_id == principal.company_id)
    return or_(*clauses)


def owner_snapshot(principal: Principal) -> dict:
    return {"created_by": principal.user_id, "company_id": principal.company_id}
