import os

from apscheduler.schedulers.background import BackgroundScheduler

from wishlist.services.price_refresh import run_price_refresh


scheduler = BackgroundScheduler()


def run_price_refresh_sweep(app):
    try:
        run_price_refresh(app)
    except Exception as exc:
        app.logger.warning("Price refresh sweep failed: %s", exc)


def start_scheduler(app):
    if not app.config.get("SCHEDULER_ENABLED", True):
        return
    if os.environ.get("WERKZEUG_RUN_MAIN") == "false":
        return

    interval_minutes = app.config["PRICE_REFRESH_INTERVAL_MINUTES"]
    if not scheduler.get_jobs():
        scheduler.add_job(
            run_price_refresh_sweep,
            "interval",
            minutes=interval_minutes,
            kwargs={"app": app},
            id="price_refresh_sweep",
            replace_existing=True,
        )
        scheduler.start()
