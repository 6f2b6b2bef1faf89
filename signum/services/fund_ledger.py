"""
Fund ledger: deductions for approved fund requests, and balance allocation.

deduct_for_document() runs inside the signing transaction when a fund
request reaches final approval. It charges:

    reqSSC → the council-wide fund (COUNCIL_FUND_ID, "ssc")
    reqCSC → the submitting department's fund

Each non-zero charge increases ``used_amount`` and appends one
FundTransaction. A document is charged at most once: any existing
transaction referencing the document short-circuits the deduction.
Sufficiency is checked upstream when the request is filed, not here.
"""

import logging
from decimal import Decimal

from flask import current_app

from signum.core.exceptions import ValidationError
from signum.models import db
from signum.models.audit import CATEGORY_FUNDS, write_audit
from signum.models.fund import (
    TRANSACTION_DEDUCT,
    FundBalance,
    FundTransaction,
    fund_id_for_department,
)
from signum.services.storage import atomic
from signum.utils.helpers import parse_amount

logger = logging.getLogger(__name__)


def _balance_for_update(department_id: str) -> FundBalance:
    balance = db.session.execute(
        db.select(FundBalance)
        .where(FundBalance.department_id == department_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    ).scalar()
    if balance is None:
        logger.warning("No fund balance for %s, creating with zero allocation", department_id)
        balance = FundBalance(department_id=department_id, initial_amount=Decimal("0"), used_amount=Decimal("0"))
        db.session.add(balance)
        db.session.flush()
    return balance


def already_deducted(document_id: int) -> bool:
    return db.session.execute(
        db.select(FundTransaction.id).where(FundTransaction.document_id == document_id).limit(1)
    ).first() is not None


def deduct_for_document(document, actor_key: str = "system") -> list[FundTransaction]:
    """Charge a fund request's amounts. Caller owns the transaction."""
    if already_deducted(document.id):
        logger.info("Fund deduction already recorded for document %s, skipping", document.id,
                    extra={"document_id": document.id})
        return []

    data = document.data or {}
    council_id = current_app.config.get("COUNCIL_FUND_ID", "ssc")
    department_fund = fund_id_for_department(data.get("departmentFull") or document.department)
    title = data.get("title") or document.title

    charges = (
        (council_id, data.get("reqSSC"), "SSC"),
        (department_fund, data.get("reqCSC"), "CSC"),
    )
    transactions = []
    for fund_id, raw_amount, label in charges:
        try:
            amount = parse_amount(raw_amount)
        except ValueError as exc:
            raise ValidationError(str(exc), details={f"req{label}": raw_amount}) from exc
        if amount <= 0 or not fund_id:
            continue

        balance = _balance_for_update(fund_id)
        balance.used_amount = Decimal(balance.used_amount or 0) + amount
        txn = FundTransaction(
            department_id=fund_id,
            transaction_type=TRANSACTION_DEDUCT,
            amount=amount,
            description=f"SAF Request ({label}): {title} - Document ID: {document.id}",
            document_id=document.id,
        )
        db.session.add(txn)
        transactions.append(txn)
        logger.info("Deducted %s from fund %s for document %s", amount, fund_id, document.id,
                    extra={"document_id": document.id})

    if transactions:
        db.session.flush()
        write_audit(
            entity_type="document",
            entity_id=document.id,
            action="fund.deduct",
            actor=actor_key,
            category=CATEGORY_FUNDS,
            detail={t.department_id: str(t.amount) for t in transactions},
        )
    return transactions


# ── Balance administration ───────────────────────────────────────────────────

def list_balances() -> list[FundBalance]:
    return FundBalance.query.order_by(FundBalance.department_id).all()


def transactions_query(department_id: str | None = None):
    q = FundTransaction.query
    if department_id:
        q = q.filter_by(department_id=department_id)
    return q.order_by(FundTransaction.created_at.desc(), FundTransaction.id.desc())


def set_allocation(department_id: str, initial_amount, actor_key: str = "system") -> FundBalance:
    """Create or update a fund's initial allocation. ``used_amount`` is untouched."""
    department_id = (department_id or "").strip().lower()
    if not department_id:
        raise ValidationError("department_id is required")
    try:
        amount = parse_amount(initial_amount)
    except ValueError as exc:
        raise ValidationError(str(exc), details={"initial_amount": initial_amount}) from exc

    with atomic():
        balance = FundBalance.query.filter_by(department_id=department_id).first()
        if balance is None:
            balance = FundBalance(department_id=department_id, used_amount=Decimal("0"))
            db.session.add(balance)
        previous = balance.initial_amount
        balance.initial_amount = amount
        db.session.flush()
        write_audit(
            entity_type="fund_balance",
            entity_id=department_id,
            action="fund.allocate",
            actor=actor_key,
            category=CATEGORY_FUNDS,
            detail={"old": str(previous) if previous is not None else None, "new": str(amount)},
        )
    return balance
