# Overview: Points ledger engine; every balance change and the Transaction row that explains it.

"""
Points Ledger Service

WHY: A user's `points` column is a cache. The ledger (Transaction rows) is
the source of truth, and every operation here moves the cache in the same
session transaction as the row that justifies the move.

BALANCE INVARIANT:
    user.points == sum(t.applied_amount for t in user.transactions)

A transaction is applied unless it is flagged suspicious, or it is a
redemption that has not been processed yet.

DESIGN:
- Services validate everything before the first write and raise RewardsError
  subclasses; they flush but never commit.
- Routes wrap each call in run_atomic() so the checks, the writes and the
  commit retry together on a concurrent-update conflict.
- Rows whose balance or budget is checked are read with lock_for_update().
"""

from __future__ import annotations

import logging

from ..extensions import db
from ..models import Event, EventGuest, PromotionUsage, PurchaseDetail, Promotion, Transaction, User
from ..models.ledger import (
    TRANSACTION_TYPE_ADJUSTMENT,
    TRANSACTION_TYPE_EVENT,
    TRANSACTION_TYPE_PURCHASE,
    TRANSACTION_TYPE_REDEMPTION,
    TRANSACTION_TYPE_TRANSFER,
    TRANSACTION_TYPES,
)
from . import permission_service, promotion_service
from .concurrency import lock_for_update
from rewards.errors import (
    AlreadyProcessed,
    Forbidden,
    InsufficientBudget,
    InsufficientPoints,
    InvalidInput,
    NotFound,
    WrongType,
)
from rewards.time_utils import utcnow
from rewards.validation import (
    parse_amount_filter,
    parse_int,
    parse_optional_bool,
    parse_pagination,
    parse_positive_int,
    parse_promotion_ids,
    parse_remark,
    parse_spent,
    parse_utorid,
)


logger = logging.getLogger(__name__)


# -- Row access --

def _lock_user(user_id: int) -> User | None:
    return lock_for_update(db.session.query(User).filter(User.id == user_id)).first()


def _lock_user_by_utorid(utorid: str) -> User | None:
    return lock_for_update(db.session.query(User).filter(User.utorid == utorid)).first()


def _lock_transaction(transaction_id: int) -> Transaction | None:
    return lock_for_update(
        db.session.query(Transaction).filter(Transaction.id == transaction_id)
    ).first()


def _credit(user: User, delta: int) -> None:
    if delta:
        user.points = user.points + delta


def compute_balance(user_id: int) -> int:
    """Recompute a balance from the ledger alone."""
    rows = db.session.query(Transaction).filter(Transaction.user_id == user_id).all()
    return sum(t.applied_amount for t in rows)


# -- Purchases --

def create_purchase(cashier: User, data: dict) -> tuple[Transaction, int]:
    """
    Record a purchase and credit its points.

    Returns (transaction, earned) where earned is what actually reached the
    customer's balance: 0 when the cashier is flagged suspicious.
    """
    utorid = parse_utorid(data.get("utorid"))
    spent = parse_spent(data.get("spent"))
    promotion_ids = parse_promotion_ids(data.get("promotionIds"))
    remark = parse_remark(data.get("remark"))

    customer = _lock_user_by_utorid(utorid)
    if not customer:
        raise NotFound("User not found")

    applied, bonus = promotion_service.resolve_promotions(customer, spent, promotion_ids)
    amount = promotion_service.compute_base_points(spent) + bonus

    txn = Transaction(
        type=TRANSACTION_TYPE_PURCHASE,
        amount=amount,
        user_id=customer.id,
        created_by_id=cashier.id,
        remark=remark,
        suspicious=bool(cashier.suspicious),
    )
    db.session.add(txn)
    db.session.flush()

    db.session.add(PurchaseDetail(
        transaction_id=txn.id,
        spent_cents=promotion_service.round_half_up(spent * 100),
        comment=remark,
    ))
    for promo in applied:
        db.session.add(PromotionUsage(
            user_id=customer.id,
            promotion_id=promo.id,
            transaction_id=txn.id,
        ))

    earned = txn.applied_amount
    _credit(customer, earned)
    db.session.flush()

    logger.info(
        "Purchase txn=%s customer=%s cashier=%s spent=%s amount=%s earned=%s promotions=%s",
        txn.id, customer.utorid, cashier.utorid, spent, amount, earned, [p.id for p in applied],
    )
    return txn, earned


# -- Adjustments --

def create_adjustment(manager: User, data: dict) -> Transaction:
    utorid = parse_utorid(data.get("utorid"))
    amount = parse_int(data.get("amount"), "amount")
    related_id = parse_positive_int(data.get("relatedId"), "relatedId")
    promotion_ids = parse_promotion_ids(data.get("promotionIds"))
    remark = parse_remark(data.get("remark"))

    user = _lock_user_by_utorid(utorid)
    if not user:
        raise NotFound("User not found")

    related = db.session.get(Transaction, related_id)
    if not related:
        raise NotFound("Related transaction not found")
    if related.user_id != user.id:
        raise InvalidInput("Related transaction mismatch")

    for promotion_id in promotion_ids:
        if db.session.get(Promotion, promotion_id) is None:
            raise InvalidInput("Invalid promotionIds")

    txn = Transaction(
        type=TRANSACTION_TYPE_ADJUSTMENT,
        amount=amount,
        user_id=user.id,
        created_by_id=manager.id,
        remark=remark,
        related_transaction_id=related.id,
    )
    db.session.add(txn)
    _credit(user, amount)
    db.session.flush()

    logger.info(
        "Adjustment txn=%s user=%s manager=%s amount=%s related=%s",
        txn.id, user.utorid, manager.utorid, amount, related.id,
    )
    return txn


# -- Redemptions --

def create_redemption(user: User, data: dict) -> Transaction:
    """
    Open a redemption request for the caller's own points.

    The balance does not move until a cashier processes it.
    """
    amount = parse_positive_int(data.get("amount"), "amount")
    remark = parse_remark(data.get("remark"))

    owner = _lock_user(user.id)
    if not owner:
        raise NotFound("User not found")
    if not owner.verified:
        raise Forbidden("User must be verified")
    if amount > owner.points:
        raise InsufficientPoints()

    txn = Transaction(
        type=TRANSACTION_TYPE_REDEMPTION,
        amount=-amount,
        user_id=owner.id,
        created_by_id=owner.id,
        remark=remark,
        processed=False,
    )
    db.session.add(txn)
    db.session.flush()

    logger.info("Redemption requested txn=%s user=%s amount=%s", txn.id, owner.utorid, amount)
    return txn


def create_redemption_for_user(cashier: User, data: dict) -> Transaction:
    """A cashier opens a pending redemption on a customer's behalf."""
    utorid = parse_utorid(data.get("utorid"))
    amount = parse_positive_int(data.get("amount"), "amount")
    remark = parse_remark(data.get("remark"))

    customer = _lock_user_by_utorid(utorid)
    if not customer:
        raise NotFound("User not found")
    if amount > customer.points:
        raise InsufficientPoints()

    txn = Transaction(
        type=TRANSACTION_TYPE_REDEMPTION,
        amount=-amount,
        user_id=customer.id,
        created_by_id=cashier.id,
        remark=remark,
        processed=False,
    )
    db.session.add(txn)
    db.session.flush()

    logger.info(
        "Redemption opened txn=%s user=%s cashier=%s amount=%s",
        txn.id, customer.utorid, cashier.utorid, amount,
    )
    return txn


def process_redemption(cashier: User, transaction_id: int) -> Transaction:
    """
    Fulfil a pending redemption, exactly once.

    STATE MACHINE: created (processed=False) -> processed. Terminal.
    """
    txn = _lock_transaction(transaction_id)
    if not txn:
        raise NotFound("Transaction not found")
    if txn.type != TRANSACTION_TYPE_REDEMPTION:
        raise WrongType("Not a redemption transaction")
    if txn.processed:
        raise AlreadyProcessed()

    owner = _lock_user(txn.user_id)
    # A redemption flagged suspicious stays unapplied once processed
    delta = 0 if txn.suspicious else txn.amount
    if owner.points + delta < 0:
        raise InsufficientPoints()

    txn.processed = True
    txn.processed_by_id = cashier.id
    txn.processed_at = utcnow()
    _credit(owner, delta)
    db.session.flush()

    logger.info(
        "Redemption processed txn=%s user=%s cashier=%s redeemed=%s",
        txn.id, owner.utorid, cashier.utorid, abs(txn.amount),
    )
    return txn


# -- Transfers --

def create_transfer(sender: User, recipient_id: int, data: dict) -> tuple[Transaction, Transaction]:
    """
    Move points between two users.

    Returns (sender_transaction, recipient_transaction). Both rows and both
    balance moves land in one commit or not at all.
    """
    if data.get("type") != TRANSACTION_TYPE_TRANSFER:
        raise InvalidInput("Invalid transaction type")
    amount = parse_positive_int(data.get("amount"), "amount")
    remark = parse_remark(data.get("remark"))

    if recipient_id == sender.id:
        raise InvalidInput("Cannot transfer to yourself")

    # Lock in id order so two opposite transfers cannot deadlock
    first_id, second_id = sorted((sender.id, recipient_id))
    locked = {first_id: _lock_user(first_id), second_id: _lock_user(second_id)}
    source = locked[sender.id]
    recipient = locked[recipient_id]

    if not recipient:
        raise NotFound("User not found")
    if not source.verified:
        raise Forbidden("Sender must be verified")
    if amount > source.points:
        raise InsufficientPoints()

    sent = Transaction(
        type=TRANSACTION_TYPE_TRANSFER,
        amount=-amount,
        user_id=source.id,
        created_by_id=source.id,
        remark=remark,
    )
    received = Transaction(
        type=TRANSACTION_TYPE_TRANSFER,
        amount=amount,
        user_id=recipient.id,
        created_by_id=source.id,
        remark=remark,
    )
    db.session.add_all([sent, received])
    _credit(source, -amount)
    _credit(recipient, amount)
    db.session.flush()

    logger.info(
        "Transfer sender=%s recipient=%s amount=%s txns=%s,%s",
        source.utorid, recipient.utorid, amount, sent.id, received.id,
    )
    return sent, received


# -- Event awards --

def award_event_points(actor: User, event_id: int, data: dict) -> list[Transaction]:
    """
    Pay event points out of the event budget.

    With `utorid` only that guest is paid; without it every confirmed guest
    is. The whole award is checked against points_remain before any row is
    written.
    """
    if data.get("type") != TRANSACTION_TYPE_EVENT:
        raise InvalidInput("Invalid transaction type")
    amount = parse_positive_int(data.get("amount"), "amount")
    remark = parse_remark(data.get("remark"))

    event = lock_for_update(db.session.query(Event).filter(Event.id == event_id)).first()
    if not event:
        raise NotFound("Event not found")
    permission_service.require_capability(actor, "AWARD_EVENT_POINTS", event=event, resource=f"event:{event_id}")

    utorid = data.get("utorid")
    if utorid is None or utorid == "":
        recipient_ids = [g.user_id for g in event.confirmed_guests]
        if not recipient_ids:
            raise InvalidInput("No guests to award")
    else:
        guest_user = db.session.query(User).filter_by(utorid=parse_utorid(utorid)).first()
        if not guest_user:
            raise NotFound("User not found")
        guest = db.session.query(EventGuest).filter_by(
            event_id=event.id, user_id=guest_user.id, confirmed=True
        ).first()
        if not guest:
            raise InvalidInput("User not a guest")
        recipient_ids = [guest_user.id]

    total = amount * len(recipient_ids)
    if event.points_remain < total:
        raise InsufficientBudget()

    created = []
    for user_id in sorted(recipient_ids):
        recipient = _lock_user(user_id)
        txn = Transaction(
            type=TRANSACTION_TYPE_EVENT,
            amount=amount,
            user_id=recipient.id,
            created_by_id=actor.id,
            remark=remark,
            event_id=event.id,
        )
        db.session.add(txn)
        _credit(recipient, amount)
        created.append(txn)

    event.points_remain -= total
    event.points_awarded += total
    db.session.flush()

    logger.info(
        "Event award event=%s actor=%s amount=%s recipients=%s total=%s",
        event.id, actor.utorid, amount, len(created), total,
    )
    return created


# -- Flags --

def set_suspicious(manager: User, transaction_id: int, suspicious) -> Transaction:
    """
    Flag or clear a transaction.

    The owner's balance moves by the change in the transaction's applied
    amount. Setting the current value again changes nothing.
    """
    if not isinstance(suspicious, bool):
        raise InvalidInput("Invalid suspicious value")

    txn = _lock_transaction(transaction_id)
    if not txn:
        raise NotFound("Transaction not found")
    if txn.suspicious == suspicious:
        return txn

    owner = _lock_user(txn.user_id)
    before = txn.applied_amount
    txn.suspicious = suspicious
    delta = txn.applied_amount - before
    _credit(owner, delta)
    db.session.flush()

    logger.info(
        "Suspicious flag txn=%s user=%s manager=%s suspicious=%s delta=%s",
        txn.id, owner.utorid, manager.utorid, suspicious, delta,
    )
    return txn


# -- Reads --

def _parse_type_filter(value) -> str:
    if not isinstance(value, str) or value.strip() not in TRANSACTION_TYPES:
        raise InvalidInput("Invalid type")
    return value.strip()


def _apply_common_filters(query, args):
    if args.get("type") is not None:
        query = query.filter(Transaction.type == _parse_type_filter(args.get("type")))

    if args.get("relatedId") is not None:
        related_id = parse_positive_int(args.get("relatedId"), "relatedId")
        query = query.filter(
            ((Transaction.type == TRANSACTION_TYPE_EVENT) & (Transaction.event_id == related_id))
            | ((Transaction.type == TRANSACTION_TYPE_ADJUSTMENT) & (Transaction.related_transaction_id == related_id))
        )

    if args.get("promotionId") is not None:
        promotion_id = parse_positive_int(args.get("promotionId"), "promotionId")
        query = query.filter(Transaction.id.in_(
            db.select(PromotionUsage.transaction_id).where(PromotionUsage.promotion_id == promotion_id)
        ))

    amount, operator = parse_amount_filter(args)
    if amount is not None:
        query = query.filter(Transaction.amount >= amount if operator == "gte" else Transaction.amount <= amount)

    return query


def _page(query, args) -> tuple[int, list[Transaction]]:
    page, limit = parse_pagination(args)
    count = query.count()
    results = query.order_by(Transaction.id.desc()).offset((page - 1) * limit).limit(limit).all()
    return count, results


def list_transactions(args) -> tuple[int, list[Transaction]]:
    """Full ledger browse (manager view), newest first."""
    query = db.session.query(Transaction)

    name = args.get("name")
    if name and name.strip():
        pattern = f"%{name.strip()}%"
        customers = db.select(User.id).where(User.utorid.ilike(pattern) | User.name.ilike(pattern))
        query = query.filter(Transaction.user_id.in_(customers))

    created_by = args.get("createdBy")
    if created_by and created_by.strip():
        pattern = f"%{created_by.strip()}%"
        creators = db.select(User.id).where(User.utorid.ilike(pattern) | User.name.ilike(pattern))
        query = query.filter(Transaction.created_by_id.in_(creators))

    suspicious = parse_optional_bool(args.get("suspicious"), "suspicious filter")
    if suspicious is not None:
        query = query.filter(Transaction.suspicious == suspicious)

    return _page(_apply_common_filters(query, args), args)


def list_user_transactions(user: User, args) -> tuple[int, list[Transaction]]:
    if args.get("relatedId") is not None and args.get("type") is None:
        raise InvalidInput("type required with relatedId")
    query = db.session.query(Transaction).filter(Transaction.user_id == user.id)
    return _page(_apply_common_filters(query, args), args)


def get_transaction(transaction_id: int) -> Transaction:
    txn = db.session.get(Transaction, transaction_id)
    if not txn:
        raise NotFound("Transaction not found")
    return txn
