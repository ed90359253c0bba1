"""Simple desktop notifications for yomi"""
import logging
import subprocess

logger = logging.getLogger(__name__)


def notify(title: str, message: str, timeout: int = 2):
    """Show desktop notification"""
    try:
        subprocess.run(
            ["notify-send", "-a", "yomi", "-t", str(timeout * 1000), title, message],
            timeout=2,
            capture_output=True,
        )
    except (OSError, subprocess.SubprocessError) as e:
        # Notifications are optional
        logger.debug(f"Notification failed: {e}")
