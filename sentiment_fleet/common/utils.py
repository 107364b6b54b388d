"""
Utility functions for the sentiment analysis worker fleet.
"""
import logging
import re
from urllib.parse import urlparse, urlunparse

LOG_FORMAT = '%(asctime)s [%(levelname)s] [{component}] %(message)s'

_WHITESPACE = re.compile(r'\s+')


def configure_logging(component, level='INFO', log_file=None):
    """Set up root logging for a process entry point.

    Args:
        component (str): Tag shown in every line, e.g. "Worker"
        level (str): Log level name
        log_file (str): Optional file to mirror the console output into
    """
    handlers = [logging.StreamHandler()]
    if log_file:
        handlers.append(logging.FileHandler(log_file))
    logging.basicConfig(
        level=getattr(logging, str(level).upper(), logging.INFO),
        format=LOG_FORMAT.format(component=component),
        handlers=handlers,
        force=True,
    )


def normalize_url(url):
    """Add a scheme if missing and drop the fragment."""
    if not url:
        return None

    url = url.strip()
    # Add scheme if missing
    if not url.startswith(('http://', 'https://')) and '://' not in url:
        url = f"https://{url}"

    parsed = urlparse(url)
    parsed = parsed._replace(fragment='')
    return urlunparse(parsed)


def collapse_whitespace(text):
    """Collapse every whitespace run into a single space and trim the ends."""
    if not text:
        return ''
    return _WHITESPACE.sub(' ', text).strip()
