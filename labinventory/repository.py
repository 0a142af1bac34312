"""Persistence for ``System`` rows.

Thin wrapper around the Flask-SQLAlchemy session.  Every write commits
immediately: the provisioning flow relies on bare rows being durable before
any QR work starts.
"""

from sqlalchemy import func, or_

from .models import System

# Columns callers may patch.  id and id_code are immutable after insert.
UPDATABLE = ("lab_name", "description", "qr_image_url", "qr_payload", "system_url")


def ci_like(column, term: str):
    """Portable case-insensitive LIKE for Postgres/SQLite. Pass a pattern like '%foo%'."""
    return func.lower(column).like(term.lower())


class SystemRepository:
    def __init__(self, db):
        self.db = db

    @property
    def session(self):
        return self.db.session

    def get_all(self, lab=None, search=None):
        q = System.query
        if lab:
            q = q.filter(System.lab_name == lab)
        if search:
            pattern = f"%{search}%"
            q = q.filter(or_(ci_like(System.id_code, pattern), ci_like(System.description, pattern)))
        return q.order_by(System.id_code.asc()).all()

    def get_by_id(self, system_id):
        return self.session.get(System, system_id)

    def get_by_ids(self, ids):
        if not ids:
            return []
        return System.query.filter(System.id.in_(ids)).all()

    def get_by_lab(self, lab):
        return System.query.filter_by(lab_name=lab).order_by(System.id_code.asc()).all()

    def lab_codes(self, lab):
        """All id codes in ``lab``'s numbering, wherever the system now lives."""
        rows = self.session.query(System.id_code).filter(System.id_code.like(f"{lab}-%")).all()
        return [r[0] for r in rows]

    def missing_qr(self):
        return System.query.filter(System.qr_image_url.is_(None)).order_by(System.id_code.asc()).all()

    def create_many(self, rows):
        """Insert ``rows`` (dicts of column values) in one transaction."""
        systems = [System(**row) for row in rows]
        self.session.add_all(systems)
        try:
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
        return systems

    def update(self, system_id, **changes):
        system = self.get_by_id(system_id)
        if system is None:
            return None
        for key, value in changes.items():
            if key not in UPDATABLE:
                raise KeyError(f"{key} cannot be updated")
            setattr(system, key, value)
        try:
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
        return system

    def delete(self, system_id) -> bool:
        deleted = System.query.filter_by(id=system_id).delete(synchronize_session="fetch")
        self.session.commit()
        return bool(deleted)

    def delete_many(self, ids):
        """Delete by id list; returns the driver's row count, or None if unknown."""
        result = System.query.filter(System.id.in_(ids)).delete(synchronize_session="fetch")
        self.session.commit()
        if result is None or result < 0:
            return None
        return result
