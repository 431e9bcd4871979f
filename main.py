"""
Main entry point for the TaxPro API server.
"""

from taxpro import create_app, db
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
import logging
import os
import signal
import sys

logging.basicConfig(
    level=os.getenv('LOG_LEVEL', 'INFO').upper(),
    format='%(asctime)s %(levelname)s [%(name)s] %(message)s',
)
logger = logging.getLogger('taxpro')

app = create_app()


def check_database() -> None:
    """Refuse to start without a reachable database."""
    with app.app_context():
        try:
            db.session.execute(text('SELECT 1'))
        except SQLAlchemyError as e:
            logger.critical(f"Database connection failed: {e}")
            sys.exit(1)
    logger.info("Database connection established")


def shutdown(signum, frame):
    logger.info(f"Received {signal.Signals(signum).name}, closing database connections")
    with app.app_context():
        db.engine.dispose()
    sys.exit(0)


if __name__ == "__main__":
    check_database()
    signal.signal(signal.SIGTERM, shutdown)
    signal.signal(signal.SIGINT, shutdown)

    port = int(os.getenv('PORT', 3000))
    debug = app.config['APP_ENV'] == 'development'

    logger.info(f"TaxPro API listening on http://0.0.0.0:{port} (env={app.config['APP_ENV']})")
    logger.info(f"Health check: http://localhost:{port}/health")

    app.run(host='0.0.0.0', port=port, debug=debug)
