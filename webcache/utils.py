"""Console output for the command line tools."""
import datetime
import logging
import sys

LOG_FORMAT = '%(asctime)s: %(levelname)s %(name)s: %(message)s'
LOG_DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


def say(msg):
    """Write a message to stderr with timestamp, matching the log lines."""
    d = datetime.datetime.now().replace(microsecond=0)
    sys.stderr.write(f'{d}: {msg}\n')
    sys.stderr.flush()


def configure_logging(verbose: bool = False) -> None:
    """Send log records to stderr, leaving stdout free for cached content."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format=LOG_FORMAT,
        datefmt=LOG_DATE_FORMAT,
        stream=sys.stderr,
    )
