"""
Session operator tooling
Usage:
    python manage_sessions.py confirm-payment <session_id> [--payment-id ID] [--send-meet-link]
    python manage_sessions.py reset-reminder <session_id> --window {24h,2h,meet_link}
    python manage_sessions.py send-payment-link <session_id> [--reuse-existing]
    python manage_sessions.py run-job
    python manage_sessions.py failed-notifications [--limit N]
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent))

from sessionpay.database import SessionLocal
from sessionpay.services.messaging_gateway import create_messaging_gateway
from sessionpay.services.payment_gateway import PaymentGatewayError, create_payment_gateway
from sessionpay.services.session_admin import SessionAdminError, SessionAdminService
from sessionpay.services.session_monitor import build_session_monitor_job

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Manual operations on therapy sessions")
    subparsers = parser.add_subparsers(dest="command", required=True)

    confirm = subparsers.add_parser("confirm-payment", help="Mark a session as paid and notify the patient")
    confirm.add_argument("session_id")
    confirm.add_argument("--payment-id", help="Provider payment id (defaults to manual-confirmation)")
    confirm.add_argument("--send-meet-link", action="store_true", help="Also send the meeting link now")

    reset = subparsers.add_parser("reset-reminder", help="Clear a reminder flag so the job retries it")
    reset.add_argument("session_id")
    reset.add_argument("--window", required=True, choices=["24h", "2h", "meet_link"])

    link = subparsers.add_parser("send-payment-link", help="Send the payment reminder with a checkout link now")
    link.add_argument("session_id")
    link.add_argument("--reuse-existing", action="store_true", help="Reuse an unexpired link instead of creating one")

    subparsers.add_parser("run-job", help="Run the session monitor once")

    failed = subparsers.add_parser("failed-notifications", help="List failed notifications")
    failed.add_argument("--limit", type=int, default=50)

    return parser


async def run_command(args) -> int:
    if args.command == "run-job":
        summary = await build_session_monitor_job().run()
        logger.info(f"✅ Session monitor finished: {summary}")
        return 1 if summary["stage_errors"] else 0

    db = SessionLocal()
    try:
        service = SessionAdminService(db, payment=create_payment_gateway(), messaging=create_messaging_gateway())

        if args.command == "confirm-payment":
            outcome = await service.confirm_payment(
                args.session_id, payment_id=args.payment_id, send_meet_link=args.send_meet_link
            )
            logger.info(f"✅ Payment confirmation: {outcome}")
        elif args.command == "reset-reminder":
            service.reset_reminder(args.session_id, args.window)
            logger.info(f"✅ Reminder {args.window} reset; the next job run will retry it")
        elif args.command == "send-payment-link":
            link = await service.send_payment_link(args.session_id, force_new=not args.reuse_existing)
            logger.info(f"✅ Payment link sent: {link}")
        elif args.command == "failed-notifications":
            rows = service.failed_notifications(limit=args.limit)
            for row in rows:
                print(f"{row.created_at}  {row.session_id}  {row.type:<18} {row.error_message}")
            logger.info(f"ℹ️ {len(rows)} failed notification(s)")
        return 0
    except (SessionAdminError, PaymentGatewayError) as e:
        logger.error(f"❌ {e}")
        return 1
    finally:
        db.close()


if __name__ == "__main__":
    parsed = build_parser().parse_args()
    try:
        sys.exit(asyncio.run(run_command(parsed)))
    except Exception as e:
        logger.error(f"❌ Command failed: {e}")
        sys.exit(1)
