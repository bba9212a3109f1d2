"""Celery tasks for ride-related background processing."""

from celery import shared_task
import logging

logger = logging.getLogger(__name__)


@shared_task
def handle_ride_status_change_task(ride_id: str, status: str, previous_status: str = None):
    """
    Hand a committed status change to the reassignment coordinator.

    Queued by the ride store after every transition into declined or
    cancelled_by_driver.
    """
    from services.reassignment import handle_status_change

    flagged = handle_status_change(ride_id, status, previous_status)
    logger.info(
        "Status change %s -> %s for ride %s handled (reassignment=%s)",
        previous_status, status, ride_id, flagged,
    )
    return flagged


@shared_task
def expire_pending_ride_task(ride_id: str, version: int):
    """
    Expire a ride that is still waiting in pending for the same assignment.

    Scheduled when a ride enters pending. If the driver has not answered,
    the ride is declined on their behalf (or cancelled when nobody was
    chosen).
    """
    from services.reassignment import expire_pending_ride

    expired = expire_pending_ride(ride_id, version)
    if expired:
        logger.info("Expired pending ride %s", ride_id)
    else:
        logger.debug("Ride %s no longer waiting at version %s", ride_id, version)
    return expired


@shared_task
def expire_stale_pending_rides_task():
    """Periodic sweep for pending rides whose scheduled expiry was lost."""
    from services.reassignment import expire_stale_pending_rides

    declined, cancelled = expire_stale_pending_rides()
    if declined or cancelled:
        logger.info("Pending sweep: %d declined, %d cancelled", declined, cancelled)
    return {"declined": declined, "cancelled": cancelled}


@shared_task
def sweep_stranded_rides_task():
    """Periodic sweep for declined/driver-cancelled rides whose reassignment was never queued."""
    from services.reassignment import sweep_stranded_rides

    flagged = sweep_stranded_rides()
    return {"reassigned": flagged}
