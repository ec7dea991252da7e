"""
Session Monitor Worker Runner
Run this as a separate process instead of the in-process scheduler:
    SCHEDULER_ENABLED=false python run_worker.py
"""

import logging
import sys
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent))

from arq import run_worker

from sessionpay.worker import WorkerSettings

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)

logger = logging.getLogger(__name__)

if __name__ == "__main__":
    logger.info("🚀 Starting session monitor worker...")
    try:
        run_worker(WorkerSettings)
    except KeyboardInterrupt:
        logger.info("👋 Session monitor worker stopped by user")
    except Exception as e:
        logger.error(f"❌ Session monitor worker crashed: {e}")
        sys.exit(1)
