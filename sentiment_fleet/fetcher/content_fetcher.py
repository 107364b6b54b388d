"""
Content fetcher for the worker fleet.
Downloads the page behind a job's locator and extracts its title text.
"""
import logging

import requests
from bs4 import BeautifulSoup

from sentiment_fleet.common.config import FETCH_TIMEOUT, USER_AGENT
from sentiment_fleet.common.exceptions import FetchError
from sentiment_fleet.common.utils import collapse_whitespace, normalize_url

logger = logging.getLogger(__name__)


def extract_title(html_content):
    """Return the whitespace-collapsed ``<title>`` text of a page, or '' if absent."""
    soup = BeautifulSoup(html_content, 'html.parser')
    if soup.title is None:
        return ''
    return collapse_whitespace(soup.title.get_text())


class ContentFetcher:
    """
    Resolves a URL to the plain text the analysis pipeline works on.
    Every failure is reported as a FetchError so the worker loop can leave the
    job's lease to expire instead of crashing.
    """
    def __init__(self, timeout=FETCH_TIMEOUT, user_agent=USER_AGENT, session=None):
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({'User-Agent': user_agent})

    @classmethod
    def from_config(cls, config):
        return cls(timeout=config.fetch_timeout, user_agent=config.user_agent)

    def fetch(self, locator):
        """Fetch a page and return its title text.

        Args:
            locator (str): URL of the page; https:// is assumed when no scheme is given

        Returns:
            str: The cleaned page title

        Raises:
            FetchError: On network errors, timeouts, non-2xx responses or a page
                without a usable title
        """
        try:
            url = normalize_url(locator)
        except ValueError as e:
            raise FetchError(f"Invalid URL {locator!r}: {e}", url=locator) from e
        if not url:
            raise FetchError("Empty URL", url=locator)

        logger.info(f"Fetching url: {url}")
        try:
            response = self.session.get(url, timeout=self.timeout)
        except requests.RequestException as e:
            raise FetchError(f"Could not fetch {url}: {e}", url=url) from e

        logger.debug(f"Response from server was {response.status_code} for {url}")
        if not 200 <= response.status_code < 300:
            raise FetchError(
                f"Status was {response.status_code} for url {url}",
                url=url,
                status_code=response.status_code,
            )

        try:
            title = extract_title(response.text)
        except Exception as e:
            raise FetchError(f"Could not parse {url}: {e}", url=url) from e
        if not title:
            raise FetchError(f"No title found at {url}", url=url, status_code=response.status_code)
        return title

    def close(self):
        self.session.close()
