import requests

from catcache.errors import FetchError
from catcache.keys import validate
from catcache.utils import say

DEFAULT_ORIGIN = 'https://http.cat/{code}.jpg'


class OriginFetcher:
    """Fetches images from a remote origin by filling in a URL template."""

    def __init__(self, url_template: str = DEFAULT_ORIGIN):
        """Initialize fetcher with a URL template.

        Args:
            url_template: Origin URL containing a '{code}' placeholder
        """
        if '{code}' not in url_template:
            raise ValueError(f'Origin URL template has no {{code}} placeholder: {url_template}')
        self.url_template = url_template

    def url_for(self, key: str) -> str:
        return self.url_template.format(code=validate(key))

    def fetch(self, key: str) -> bytes:
        """Get image bytes for a key from the origin.

        Args:
            key: A validated 3-digit code

        Returns:
            Response body of a 2xx response

        Raises:
            FetchError: On a non-2xx status or any transport error
        """
        url = self.url_for(key)
        say(f'Fetching {url}')

        try:
            resp = requests.get(url)
            resp.raise_for_status()
        except requests.RequestException as e:
            raise FetchError(f'{url}: {e}') from e

        return resp.content


class NoOriginFetcher(OriginFetcher):
    """Fetcher for a disabled origin - every fetch fails."""

    def __init__(self):
        self.url_template = None

    def fetch(self, key: str) -> bytes:
        raise FetchError(f'no origin configured for {key!r}')


def make_fetcher(url_template) -> OriginFetcher:
    """Fetcher for a URL template; an empty or missing template disables the origin."""
    if not url_template:
        return NoOriginFetcher()
    return OriginFetcher(url_template)
