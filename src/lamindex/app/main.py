import sys

from .cli import main as cli_main
from ..ingestion.orchestrator import EXIT_FATAL
from ..utils.logging import get_logger

logger = get_logger(__name__)


def main():
    return cli_main()


if __name__ == "__main__":
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        logger.info("Interrupted; the last flushed index is intact.")
        sys.exit(130)
    except Exception as e:
        logger.error("Fatal: %s", e, exc_info=True)
        sys.exit(EXIT_FATAL)
