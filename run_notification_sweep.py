"""
Notification sweep runner
Run this as a separate process when no arq/Redis worker is deployed:

    python run_notification_sweep.py          # loop every NOTIFICATION_SWEEP_INTERVAL_MINUTES
    python run_notification_sweep.py --once   # one cycle, then exit (for system cron)
"""

import asyncio
import logging
import sys

from shopbook.worker import notification_cycle_task, run_notification_loop, startup

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)

logger = logging.getLogger(__name__)


async def run_once():
    ctx = {}
    await startup(ctx)
    return await notification_cycle_task(ctx)


if __name__ == "__main__":
    once = "--once" in sys.argv[1:]
    logger.info("🚀 Starting notification sweep" + (" (single run)" if once else "..."))
    try:
        if once:
            asyncio.run(run_once())
        else:
            asyncio.run(run_notification_loop())
    except KeyboardInterrupt:
        logger.info("👋 Notification sweep stopped by user")
    except Exception as e:
        logger.error(f"❌ Notification sweep crashed: {e}")
        sys.exit(1)
