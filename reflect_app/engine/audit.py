from datetime import datetime
import logging
import platform

logger = logging.getLogger(__name__)


def start_audit(module: str) -> list[str]:
    return [f"Session start: {datetime.now().isoformat()}",
            f"Platform: {platform.platform()}",
            f"Module: {module}"]


def log_step(audit: list[str], msg: str):
    logger.info(msg)
    audit.append(msg)
