"""
Sign-um Document Approval Engine
Actor directory models.

Models:
    - Employee: faculty and administrative staff (advisers, deans, officers)
    - Student: students, including council officers such as the SSC President

The workflow engine only reads these tables: assignee lookup matches on
``position`` (and ``department`` for department-scoped steps).
"""

from datetime import datetime, timezone

from signum.models import db


class _PersonMixin:
    first_name = db.Column(db.String(100), nullable=False)
    last_name = db.Column(db.String(100), nullable=False)
    email = db.Column(db.String(255), nullable=True, unique=True)
    position = db.Column(
        db.String(100), nullable=True, index=True,
        comment="Exact role title used for step assignment, e.g. Dean | OIC OSA | SSC President",
    )
    department = db.Column(
        db.String(150), nullable=True, index=True,
        comment="Full department name, e.g. College of Engineering",
    )
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def to_dict(self):
        return {
            "id": self.id,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "full_name": self.full_name,
            "email": self.email,
            "position": self.position,
            "department": self.department,
        }


class Employee(_PersonMixin, db.Model):
    __tablename__ = "employees"

    id = db.Column(db.Integer, primary_key=True)

    def __repr__(self):
        return f"<Employee {self.id}: {self.position}>"


class Student(_PersonMixin, db.Model):
    __tablename__ = "students"

    id = db.Column(db.Integer, primary_key=True)

    def __repr__(self):
        return f"<Student {self.id}: {self.position or 'student'}>"
