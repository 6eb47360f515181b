"""Order expiry and upstream cancellation retry worker.

Cancels PENDING orders that outlived CHECKOUT_PENDING_ORDER_TTL_SECONDS, then
polls for cancelled orders whose gateway authorization still needs voiding
and retries them with exponential backoff.

Usage:
    python src/worker.py              # Run until interrupted
    python src/worker.py --once       # Process due records once and exit
"""

import argparse
import signal

import structlog


def main():
    parser = argparse.ArgumentParser(description="Checkout upstream cancellation worker")
    parser.add_argument("--once", action="store_true", help="Run a single pass and exit")
    parser.add_argument("--poll-seconds", type=float, help="Override CHECKOUT_WORKER_POLL_SECONDS")
    args = parser.parse_args()

    from checkout.cancellation.worker import CancellationRetryWorker
    from checkout.domain import checkout
    from checkout.utils.logging import configure_logging

    configure_logging()
    checkout.init()
    logger = structlog.get_logger("worker")

    worker = CancellationRetryWorker(poll_seconds=args.poll_seconds)
    if args.once:
        logger.info("cancellation_worker_single_pass", results=worker.run_once())
        return

    signal.signal(signal.SIGTERM, lambda *_: worker.stop())
    worker.start()
    try:
        while worker.is_alive():
            worker.join(timeout=1.0)
    except KeyboardInterrupt:
        worker.stop(timeout=5.0)


if __name__ == "__main__":
    main()
