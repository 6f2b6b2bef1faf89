"""
Sign-um Document Approval Engine
Fund ledger domain model.

Models:
    - FundBalance: allocation and running usage per fund (council or department)
    - FundTransaction: immutable, append-only deduction record

available = initial_amount - used_amount. Only the fund ledger service
changes ``used_amount``; transactions are never updated or deleted.
"""

from datetime import datetime, timezone
from decimal import Decimal

from signum.models import db

TRANSACTION_DEDUCT = "deduct"

# Full department name (lower-case) → short fund id
DEPARTMENT_FUND_IDS = {
    "supreme student council": "ssc",
    "college of arts, social sciences and education": "casse",
    "college of arts, social sciences, and education": "casse",
    "college of business": "cob",
    "college of computing and information sciences": "ccis",
    "college of criminology": "coc",
    "college of engineering": "coe",
    "college of hospitality and tourism management": "chtm",
    "college of nursing": "con",
    "spcf miranda": "miranda",
}

# Short department code → full name, used when preparing form payloads
DEPARTMENT_FULL_NAMES = {
    "casse": "College of Arts, Social Sciences, and Education",
    "cob": "College of Business",
    "ccis": "College of Computing and Information Sciences",
    "coc": "College of Criminology",
    "coe": "College of Engineering",
    "chtm": "College of Hospitality and Tourism Management",
    "con": "College of Nursing",
    "miranda": "SPCF Miranda",
    "ssc": "Supreme Student Council",
}


def fund_id_for_department(department: str | None) -> str | None:
    """Map a department (full name or short code) to its fund id."""
    if not department:
        return None
    key = department.strip().lower()
    if key in DEPARTMENT_FULL_NAMES:
        return key
    return DEPARTMENT_FUND_IDS.get(key, key)


class FundBalance(db.Model):
    __tablename__ = "fund_balances"

    id = db.Column(db.Integer, primary_key=True)
    department_id = db.Column(db.String(50), nullable=False, unique=True, comment="ssc | coe | ccis | ...")
    initial_amount = db.Column(db.Numeric(14, 2), nullable=False, default=Decimal("0"))
    used_amount = db.Column(db.Numeric(14, 2), nullable=False, default=Decimal("0"))
    updated_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    @property
    def available_amount(self) -> Decimal:
        return Decimal(self.initial_amount or 0) - Decimal(self.used_amount or 0)

    def to_dict(self):
        return {
            "department_id": self.department_id,
            "initial_amount": float(self.initial_amount or 0),
            "used_amount": float(self.used_amount or 0),
            "available_amount": float(self.available_amount),
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<FundBalance {self.department_id}: {self.used_amount}/{self.initial_amount}>"


class FundTransaction(db.Model):
    """Append-only deduction record. ``document_id`` keys ledger idempotency."""

    __tablename__ = "fund_transactions"

    id = db.Column(db.Integer, primary_key=True)
    department_id = db.Column(db.String(50), nullable=False, index=True)
    transaction_type = db.Column(db.String(20), nullable=False, default=TRANSACTION_DEDUCT)
    amount = db.Column(db.Numeric(14, 2), nullable=False)
    description = db.Column(db.String(500), nullable=False, comment="Embeds 'Document ID: <id>'")
    document_id = db.Column(
        db.Integer, db.ForeignKey("documents.id", ondelete="RESTRICT"), nullable=True, index=True,
    )
    created_at = db.Column(
        db.DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "department_id": self.department_id,
            "transaction_type": self.transaction_type,
            "amount": float(self.amount),
            "description": self.description,
            "document_id": self.document_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
