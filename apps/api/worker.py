"""RQ worker process: drains asset analysis first, then transcription."""

import logging
import os
import socket

from rq import Worker

from logging_config import setup_logging
from services.job_queue import ASSET_QUEUE_NAME, TRANSCRIPTION_QUEUE_NAME, get_redis_connection

logger = logging.getLogger(__name__)

# Order matters: RQ polls queues in list order.
WORKER_QUEUES = [ASSET_QUEUE_NAME, TRANSCRIPTION_QUEUE_NAME]


def main():
    setup_logging()
    name = f"asset-worker-{socket.gethostname()}-{os.getpid()}"
    logger.info("Starting %s on queues: %s", name, ", ".join(WORKER_QUEUES))
    worker = Worker(WORKER_QUEUES, connection=get_redis_connection(), name=name)
    worker.work(with_scheduler=True)


if __name__ == "__main__":
    main()
