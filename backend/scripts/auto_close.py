#!/usr/bin/env python
"""Close work orders left in pending_reporter_closure past the closure window.

Usage (cron, e.g. hourly):
    python backend/scripts/auto_close.py
    python backend/scripts/auto_close.py --hours 48
"""
from __future__ import annotations
import os, sys, argparse, asyncio

# Allow running from repo root
sys.path.append(os.path.abspath('backend'))

from cmms import create_app, new_session  # type: ignore
from cmms.services.auto_close import auto_close_stale
from cmms.services.notifications import LoggingNotifier
from cmms.services.work_order_store import SqlWorkOrderStore


def parse_args():
    p = argparse.ArgumentParser(description="Auto-close work orders awaiting reporter closure")
    p.add_argument('--hours', type=int, default=None, help='Closure window in hours (default: AUTO_CLOSE_HOURS)')
    return p.parse_args()


def main():
    args = parse_args()
    app = create_app()
    hours = args.hours if args.hours is not None else app.config['AUTO_CLOSE_HOURS']
    closed = asyncio.run(auto_close_stale(SqlWorkOrderStore(new_session), LoggingNotifier(), hours=hours))
    print(f"[DONE] Auto-closed {len(closed)} work order(s)")
    for record in closed:
        print(f"  #{record['id']} {record['code']}")

if __name__ == '__main__':
    main()
