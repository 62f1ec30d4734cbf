"""
Notarium Backend — Note Visibility Rule
=========================================

Who may see which note, as a SQL predicate (for queries) and as a plain
check (for notes already loaded).

A viewer sees a note when:
    - the viewer is an admin, or
    - the viewer wrote it, or
    - it is published and visibility is "everyone", or
    - it is published, visibility is "class" and the author's class equals
      the viewer's class
"""

from sqlalchemy import and_, false, or_
from sqlalchemy.sql.elements import ColumnElement

from notarium.models.note import STATUS_PUBLISHED, VISIBILITY_CLASS, VISIBILITY_EVERYONE, Note
from notarium.models.user import User


def visible_to(viewer: User) -> ColumnElement[bool]:
    """WHERE-clause fragment restricting notes to those the viewer may see."""
    if viewer.is_admin:
        return Note.id.isnot(None)

    same_class = (
        and_(Note.visibility == VISIBILITY_CLASS, Note.author_class == viewer.user_class)
        if viewer.user_class
        else false()
    )
    return or_(
        Note.author_id == viewer.id,
        and_(
            Note.status == STATUS_PUBLISHED,
            or_(Note.visibility == VISIBILITY_EVERYONE, same_class),
        ),
    )


def can_view(note: Note, viewer: User) -> bool:
    if viewer.is_admin or note.author_id == viewer.id:
        return True
    if not note.is_published:
        return False
    if note.visibility == VISIBILITY_EVERYONE:
        return True
    return (
        note.visibility == VISIBILITY_CLASS
        and viewer.user_class is not None
        and note.author_class == viewer.user_class
    )
