"""RQ worker process entrypoint for pipeline jobs.

Usage: ``python worker.py [queue ...]``. With no arguments the worker serves
every pipeline queue; run one process per unit of per-queue concurrency
(see ``WORKER_CONCURRENCY``).
"""

import logging
import sys

from rq import Worker

from services.job_queue import ALL_QUEUE_NAMES, get_redis_connection


def main():
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    queue_names = [name for name in sys.argv[1:] if name] or list(ALL_QUEUE_NAMES)
    unknown = [name for name in queue_names if name not in ALL_QUEUE_NAMES]
    if unknown:
        raise SystemExit(f"Unknown queue(s): {', '.join(unknown)}")
    redis_conn = get_redis_connection()
    worker = Worker(queue_names, connection=redis_conn)
    worker.work(with_scheduler=True)


if __name__ == "__main__":
    main()
