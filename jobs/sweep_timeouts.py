"""One-shot timeout sweep for an external cron."""

import asyncio
import sys
from pathlib import Path

# Allow running from a checkout without installing the package
sys.path.insert(0, str(Path(__file__).parent.parent))

from sqlalchemy.exc import SQLAlchemyError

from teachmatch.errors import PersistenceError
from teachmatch.escalation.engine import EscalationEngine
from teachmatch.models.database import create_tables, engine
from teachmatch.services.notifications import NotificationService
from teachmatch.utils.logging import CorrelationContextManager, get_logger, setup_logging

# Setup logging
setup_logging()
logger = get_logger(__name__)


async def main() -> int:
    """Sweep lapsed requests once and notify the affected parties."""
    with CorrelationContextManager() as correlation_id:
        logger.info("Starting timeout sweep job", correlation_id=correlation_id)

        try:
            await create_tables()
            escalation_engine = EscalationEngine()
            notifications = NotificationService()

            result = await escalation_engine.sweep()
            for transition in result.transitions:
                await notifications.dispatch(transition)
        except PersistenceError as e:
            logger.error("Timeout sweep job failed", error=e.message, exc_info=True)
            return 1
        except SQLAlchemyError as e:
            logger.error("Timeout sweep job failed", error=str(e), exc_info=True)
            return 1
        finally:
            await engine.dispose()

        logger.info(
            "Timeout sweep job completed",
            correlation_id=correlation_id,
            **result.to_dict()
        )
        return 1 if result.errors else 0


if __name__ == "__main__":
    exit_code = asyncio.run(main())
    sys.exit(exit_code)
