"""
Order and job status transitions.

Order lifecycle is pending -> picked_up -> delivered, forward only.
Job status is never stored independently: it is derived from the order
statuses after every change. Every transition returns a TransitionResult
with a user-facing notice; rejected and no-op attempts leave the job
untouched.
"""

import enum
from dataclasses import dataclass
from typing import Iterable, List, Optional

from freshroute.core.errors import OrderNotFoundError
from freshroute.schemas.geofence import LocationVerificationResult
from freshroute.schemas.job import Job, JobStatus, Order, OrderStatus


class TransitionOutcome(str, enum.Enum):
    """How a transition request was handled."""
    APPLIED = "APPLIED"
    NOOP = "NOOP"
    REJECTED = "REJECTED"


@dataclass
class TransitionResult:
    """Result of a status transition plus the notice shown to the user."""
    outcome: TransitionOutcome
    job: Job
    title: str
    message: str
    order_id: Optional[str] = None

    @property
    def applied(self) -> bool:
        return self.outcome == TransitionOutcome.APPLIED


def derive_job_status(orders: Iterable[Order]) -> JobStatus:
    """
    Derive the job status from its orders.

    completed iff every order is delivered, in_progress iff at least one
    order has been picked up or delivered, pending otherwise.
    """
    statuses = [o.status for o in orders]
    if all(s == OrderStatus.DELIVERED for s in statuses):
        return JobStatus.COMPLETED
    if any(s in (OrderStatus.PICKED_UP, OrderStatus.DELIVERED) for s in statuses):
        return JobStatus.IN_PROGRESS
    return JobStatus.PENDING


def ordered_orders(job: Job) -> List[Order]:
    """Orders in visitation (pickup_order) sequence."""
    return sorted(job.orders, key=lambda o: o.pickup_order)


def next_stop(job: Job) -> Optional[Order]:
    """First order in sequence that is not yet delivered, or None."""
    for order in ordered_orders(job):
        if order.status != OrderStatus.DELIVERED:
            return order
    return None


def requires_geofence(order: Order) -> bool:
    """Pickups with a known farm coordinate must be verified on site."""
    return order.farmer.location is not None


def apply_order_status(job: Job, order_id: str, status: OrderStatus) -> Job:
    """
    Return a copy of the job with one order's status replaced and the
    job status re-derived in the same step.
    """
    if job.get_order(order_id) is None:
        raise OrderNotFoundError(job.id, order_id)

    orders = [
        o.model_copy(update={"status": status}) if o.id == order_id else o
        for o in job.orders
    ]
    return job.model_copy(update={"orders": orders, "status": derive_job_status(orders)})


def get_order(job: Job, order_id: str) -> Order:
    order = job.get_order(order_id)
    if order is None:
        raise OrderNotFoundError(job.id, order_id)
    return order


def mark_picked_up(
    job: Job,
    order_id: str,
    verification: Optional[LocationVerificationResult] = None,
) -> TransitionResult:
    """
    Mark an order as picked up.

    Blocked until a successful geofence verification is supplied when the
    order's farm has a coordinate.
    """
    order = get_order(job, order_id)

    if order.status == OrderStatus.PICKED_UP:
        return TransitionResult(
            outcome=TransitionOutcome.NOOP,
            job=job,
            title="Already picked up",
            message=f"Order {order.id} is already marked as picked up.",
            order_id=order.id,
        )
    if order.status == OrderStatus.DELIVERED:
        return TransitionResult(
            outcome=TransitionOutcome.NOOP,
            job=job,
            title="Already delivered",
            message=f"Order {order.id} has already been delivered.",
            order_id=order.id,
        )

    if requires_geofence(order) and (verification is None or not verification.success):
        reason = verification.error if verification and verification.error else None
        return TransitionResult(
            outcome=TransitionOutcome.REJECTED,
            job=job,
            title="Location not verified",
            message=reason or "Please verify your location at the pickup point first.",
            order_id=order.id,
        )

    updated = apply_order_status(job, order.id, OrderStatus.PICKED_UP)
    return TransitionResult(
        outcome=TransitionOutcome.APPLIED,
        job=updated,
        title="Picked up",
        message=f"Order {order.id} marked as picked up.",
        order_id=order.id,
    )


def mark_delivered(job: Job, order_id: str) -> TransitionResult:
    """Mark an order as delivered. Only picked-up orders can be delivered."""
    order = get_order(job, order_id)

    if order.status == OrderStatus.PENDING:
        return TransitionResult(
            outcome=TransitionOutcome.REJECTED,
            job=job,
            title="Not picked up yet",
            message="You must mark this order as picked up before delivering it.",
            order_id=order.id,
        )
    if order.status == OrderStatus.DELIVERED:
        return TransitionResult(
            outcome=TransitionOutcome.NOOP,
            job=job,
            title="Already delivered",
            message=f"Order {order.id} is already marked as delivered.",
            order_id=order.id,
        )

    updated = apply_order_status(job, order.id, OrderStatus.DELIVERED)
    return TransitionResult(
        outcome=TransitionOutcome.APPLIED,
        job=updated,
        title="Delivered",
        message=f"Order {order.id} marked as delivered.",
        order_id=order.id,
    )


def mark_job_completed(job: Job) -> TransitionResult:
    """Confirm job completion. Allowed only once every order is delivered."""
    if derive_job_status(job.orders) != JobStatus.COMPLETED:
        return TransitionResult(
            outcome=TransitionOutcome.REJECTED,
            job=job,
            title="Cannot complete job",
            message="All orders must be delivered first.",
        )

    updated = job.model_copy(update={"status": JobStatus.COMPLETED})
    return TransitionResult(
        outcome=TransitionOutcome.APPLIED,
        job=updated,
        title="Job completed",
        message="This job has been marked as completed.",
    )
