"""
Notarium Backend — Subject Model
==================================

A school subject notes are filed under. `note_count` is a denormalized count
of published notes, kept in step by the note service and recomputed on
demand by the admin sync endpoint.
"""

from typing import List, Optional, Tuple

from sqlalchemy import Integer, String, text
from sqlalchemy.orm import Mapped, mapped_column

from notarium.database import Base

# (name, Font Awesome icon) seeded by the initial migration and at startup
DEFAULT_SUBJECTS: List[Tuple[str, str]] = [
    ("Filsafat", "fa-brain"),
    ("Fisika", "fa-atom"),
    ("Matematika", "fa-square-root-variable"),
    ("Bahasa Indonesia", "fa-language"),
    ("Bahasa Inggris", "fa-language"),
    ("Sosiologi", "fa-users"),
    ("Sejarah Indonesia", "fa-landmark"),
    ("Geografi", "fa-globe-americas"),
    ("Ekonomi", "fa-chart-line"),
    ("Sains", "fa-flask"),
    ("PKN", "fa-flag"),
    ("PAK", "fa-church"),
]


class Subject(Base):
    __tablename__ = "subjects"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    icon: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    note_count: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default=text("0")
    )

    def __repr__(self) -> str:
        return f"<Subject(id={self.id}, name='{self.name}')>"
