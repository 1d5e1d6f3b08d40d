#!/usr/bin/env python3
"""
SLA ticker — drives deadline-based deliverables and terminal decisions.

Deliverable deadlines (24h / 48h / 72h) and stuck-job timeouts fire even
when no job event arrives, so something has to wake the engine up
periodically. Run this next to the RQ workers (one instance is enough).

Usage:
    python scripts/sla_ticker.py                 # enqueue a tick every 60s
    python scripts/sla_ticker.py --interval 300  # every 5 minutes
    python scripts/sla_ticker.py --once --inline # run one tick in this process and exit
"""
import sys
import os
import time
import argparse
import logging

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app.database import import_models
from app.engine.worker import enqueue_sla_tick, sla_tick
from app.logging_config import configure_logging

logger = logging.getLogger('scripts.sla_ticker')


def tick(inline):
    if inline:
        sla_tick()
    else:
        enqueue_sla_tick()
        logger.info("SLA tick enqueued")


def main():
    parser = argparse.ArgumentParser(description='Periodic SLA evaluation')
    parser.add_argument('--interval', type=int, default=60, help='Seconds between ticks')
    parser.add_argument('--once', action='store_true', help='Run a single tick and exit')
    parser.add_argument('--inline', action='store_true',
                        help='Run the tick in this process instead of enqueueing it on RQ')
    args = parser.parse_args()

    configure_logging(process='ticker')
    import_models()

    if args.once:
        tick(args.inline)
        return

    logger.info("SLA ticker started (interval=%ds, inline=%s)", args.interval, args.inline)
    while True:
        try:
            tick(args.inline)
        except Exception:
            logger.error("SLA tick failed", exc_info=True)
        time.sleep(args.interval)


if __name__ == '__main__':
    main()
