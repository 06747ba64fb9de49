"""Outreach Follow-Up Engine - Main entry point"""
from flask import Flask, jsonify
from flask_cors import CORS
import os
import sys
import signal
import logging
from datetime import datetime, timezone
from dotenv import load_dotenv

from outreach.api.worker_health import worker_health_bp
from outreach.utils.constants import Credentials, WorkerSettings

# Load environment variables early
load_dotenv()

ALLOWED_ORIGINS = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
]


def setup_logging(level: str = "INFO"):
    """Root logger to stdout and outreach.log."""
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout), logging.FileHandler("outreach.log")],
    )

    # Reduce noise from chatty libraries
    logging.getLogger("apscheduler").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)


def create_app(health_monitor) -> Flask:
    app = Flask(__name__)
    app.config['WORKER_HEALTH_MONITOR'] = health_monitor

    CORS(app, resources={r"/api/*": {
        "origins": ALLOWED_ORIGINS,
        "methods": ["GET", "POST", "OPTIONS"],
        "allow_headers": ["Content-Type", "Authorization"],
    }})

    app.register_blueprint(worker_health_bp, url_prefix='/api/workers/health')

    @app.route("/health")
    def health():
        return jsonify({
            "status": "ok",
            "timestamp": datetime.now(timezone.utc).isoformat(),
        })

    return app


def build_services(settings: WorkerSettings):
    """Wire storage, collaborators, the queue and the worker."""
    from outreach.ai_agent.brand_context import BrandContextProvider
    from outreach.ai_agent.reply_generator import AIReplyGenerator
    from outreach.database.storage import SupabaseStorage
    from outreach.messaging import (
        ChannelDispatcher,
        EmailSender,
        InstagramSender,
        WhatsAppSender,
    )
    from outreach.monitoring.worker_health import WorkerHealthMonitor
    from outreach.notifications.notifier import NotificationService
    from outreach.scheduler.comment_follow_ups import CommentFollowUpProcessor
    from outreach.scheduler.follow_up_queue import FollowUpQueue
    from outreach.scheduler.follow_up_worker import FollowUpWorker

    storage = SupabaseStorage()
    notifier = NotificationService(storage)
    health_monitor = WorkerHealthMonitor(
        notifier=notifier,
        check_interval_seconds=settings.health_check_interval_seconds,
        stale_after_minutes=settings.health_stale_after_minutes,
    )

    dispatcher = ChannelDispatcher(
        [InstagramSender(), WhatsAppSender(), EmailSender()],
        storage=storage,
    )
    reply_generator = AIReplyGenerator()
    queue = FollowUpQueue(storage, settings)

    worker = FollowUpWorker(
        storage=storage,
        queue=queue,
        reply_generator=reply_generator,
        dispatcher=dispatcher,
        brand_provider=BrandContextProvider(storage),
        health_monitor=health_monitor,
        notifier=notifier,
        comment_processor=CommentFollowUpProcessor(storage, reply_generator, dispatcher),
        settings=settings,
    )
    return health_monitor, worker


if __name__ == "__main__":
    creds = Credentials()
    setup_logging(creds.LOG_LEVEL)
    logger = logging.getLogger("outreach")

    creds.require('SUPABASE_URL', 'SUPABASE_SECRET_KEY')
    missing = creds.missing('ANTHROPIC_API_KEY')
    if missing:
        logger.warning(f"Not configured: {', '.join(missing)} - replies will use fallback text")

    settings = WorkerSettings.from_env()
    health_monitor, worker = build_services(settings)
    app = create_app(health_monitor)

    def graceful_shutdown(signum, frame):
        """Handle SIGTERM/SIGINT for graceful shutdown."""
        sig_name = signal.Signals(signum).name
        logger.info(f"Received {sig_name} - shutting down gracefully")
        worker.stop()
        health_monitor.stop()
        sys.exit(0)

    signal.signal(signal.SIGTERM, graceful_shutdown)
    signal.signal(signal.SIGINT, graceful_shutdown)

    health_monitor.start()
    worker.start()

    port = int(os.environ.get("PORT", 8000))
    host = os.environ.get("HOST", "127.0.0.1")
    logger.info(f"Worker health API at http://{host}:{port}/api/workers/health")
    app.run(host=host, port=port, debug=False, use_reloader=False)
