from __future__ import annotations

from ..extensions import db


class DocumentSequence(db.Model):
    """
    Named monotonic counters (order numbers, invoice numbers).

    Incremented with a single UPDATE ... SET next_number = next_number + 1
    so concurrent allocations never hand out the same value.
    """
    __tablename__ = "document_sequences"
    __table_args__ = (
        db.UniqueConstraint("name", name="uq_document_sequences_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(32), nullable=False)
    next_number = db.Column(db.Integer, nullable=False, default=1)
