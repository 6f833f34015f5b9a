from celery.schedules import crontab
from propertyhub import celery


def configure_beat_schedule(app):
    """Daily billing jobs; the lease expiry sweep only runs when enabled."""
    hour = app.config.get("BILLING_TICK_HOUR", 0)
    minute = app.config.get("BILLING_TICK_MINUTE", 1)

    schedule = {
        # Generate this month's rent for leases due today
        "generate-monthly-payments": {
            "task": "propertyhub.tasks.generate_monthly_payments_task",
            "schedule": crontab(hour=hour, minute=minute),
        },
        # Sweep pending payments past their due date
        "update-overdue-payments": {
            "task": "propertyhub.tasks.update_overdue_payments_task",
            "schedule": crontab(hour=hour, minute=minute),
        },
    }

    if app.config.get("LEASE_EXPIRY_SWEEP_ENABLED"):
        schedule["auto-expire-leases"] = {
            "task": "propertyhub.tasks.auto_expire_leases_task",
            "schedule": crontab(hour=hour, minute=minute),
        }

    celery.conf.beat_schedule = schedule
    return schedule
