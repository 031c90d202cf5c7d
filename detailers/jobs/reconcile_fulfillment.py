# -*- coding: utf-8 -*-
"""
Fulfillment Reconciliation Job

Finds PAID purchases whose fulfillment never completed (the process died
between the status write and credential issuance, or issuance failed) and runs
fulfillment again. Run it periodically with ``flask reconcile-fulfillment``.
"""
from datetime import datetime, timedelta
from typing import Dict, Optional

from detailers.infra.db import db
from detailers.infra.log import get_logger
from detailers.models.purchase import PaymentStatus, Purchase

logger = get_logger("detailers.jobs.reconcile")


def _claim(purchase: Purchase) -> bool:
    """Bump fulfillment_attempts only if no other run bumped it first."""
    matched = (
        Purchase.query
        .filter(Purchase.purchase_id == purchase.purchase_id,
                Purchase.fulfilled_at.is_(None),
                Purchase.fulfillment_attempts == purchase.fulfillment_attempts)
        .update({"fulfillment_attempts": purchase.fulfillment_attempts + 1},
                synchronize_session=False)
    )
    db.session.commit()
    return bool(matched)


def reconcile_fulfillment(service, grace_minutes: int = 10, max_attempts: int = 5,
                          now: Optional[datetime] = None) -> Dict[str, int]:
    """
    Re-run fulfillment for stale, unfulfilled PAID purchases.

    Returns ``{scanned, claimed, fulfilled, failed}``.
    """
    cutoff = (now or datetime.utcnow()) - timedelta(minutes=grace_minutes)
    candidates = (
        Purchase.query
        .filter(Purchase.payment_status == PaymentStatus.PAID.value,
                Purchase.fulfilled_at.is_(None),
                Purchase.updated_at <= cutoff,
                Purchase.fulfillment_attempts < max_attempts)
        .order_by(Purchase.updated_at.asc())
        .all()
    )

    summary = {"scanned": len(candidates), "claimed": 0, "fulfilled": 0, "failed": 0}
    for purchase in candidates:
        if not _claim(purchase):
            continue
        summary["claimed"] += 1
        db.session.refresh(purchase)

        try:
            fulfilled = service.fulfill(purchase)
        except Exception:
            db.session.rollback()
            logger.exception("Reconciliation fulfillment raised", purchase_id=purchase.purchase_id)
            fulfilled = False

        if fulfilled:
            summary["fulfilled"] += 1
        else:
            summary["failed"] += 1
            if purchase.fulfillment_attempts >= max_attempts:
                logger.error("Fulfillment attempts exhausted; needs manual follow-up",
                             purchase_id=purchase.purchase_id,
                             attempts=purchase.fulfillment_attempts)

    logger.info("Fulfillment reconciliation finished", **summary)
    return summary
