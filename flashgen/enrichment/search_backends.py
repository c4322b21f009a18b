"""Search backends used to attach related links to flashcards.

Ranked: WikipediaSearch (free), SerpApiSearch (paid, needs a key) and
StaticLinkGenerator, which builds "search this term on ..." links and cannot
fail.
"""
import re
from typing import List, Optional
from urllib.parse import quote, quote_plus

import requests

from flashgen.utils import get_logger
from flashgen.flashcards.response_parser import RelatedLink

LOG = get_logger()

USER_AGENT = 'flashgen/1.0 (flashcard link enrichment)'

STOP_WORDS = frozenset('''
a about above after again against all am an and any are as at be because been before being below between both
but by can could did do does doing down during each few for from further had has have having he her here hers
how i if in into is it its itself just me more most my no nor not of off on once only or other our out over own
same she should so some such than that the their them then there these they this those through to too under
until up very was we were what when where which while who whom why will with would you your explain describe
define name list give main primary purpose role function called known does mean meaning
'''.split())

_TAGS = re.compile(r'<[^>]+>')
_WORD = re.compile(r"[a-z0-9][a-z0-9'\-]*")


class SearchBackendError(Exception):
    pass


def build_search_query(question: str, max_terms: int = 5) -> str:
    tokens = _WORD.findall((question or '').lower())
    terms = [t.strip("'-") for t in tokens if t not in STOP_WORDS and len(t) > 1]
    return ' '.join(terms[:max_terms])


class SearchBackend:
    name = 'search'

    def __init__(self, timeout: float = 5, session: Optional[requests.Session] = None):
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({'User-Agent': USER_AGENT})

    def is_enabled(self) -> bool:
        return True

    def search(self, query: str, limit: int) -> List[RelatedLink]:
        raise NotImplementedError

    def _get_json(self, url: str, params: dict) -> dict:
        try:
            response = self.session.get(url, params=params, timeout=self.timeout)
            response.raise_for_status()
            return response.json()
        except (requests.RequestException, ValueError) as e:
            LOG.debug('search_request_failed', extra={'backend': self.name, 'error': str(e)})
            raise SearchBackendError(f'{self.name} request failed: {e}') from e


class WikipediaSearch(SearchBackend):
    name = 'wikipedia'
    API_URL = 'https://en.wikipedia.org/w/api.php'

    def search(self, query: str, limit: int) -> List[RelatedLink]:
        params = {'action': 'query', 'format': 'json', 'list': 'search', 'srsearch': query, 'srlimit': str(limit)}
        data = self._get_json(self.API_URL, params).get('query', {}).get('search', [])
        links = []
        for item in data[:limit]:
            title = item.get('title')
            if not title:
                continue
            links.append(RelatedLink(
                title=title,
                url=f"https://en.wikipedia.org/wiki/{quote(title.replace(' ', '_'))}",
                description=_TAGS.sub('', item.get('snippet', '')).strip(),
            ))
        return links


class SerpApiSearch(SearchBackend):
    name = 'serpapi'
    API_URL = 'https://serpapi.com/search.json'

    def __init__(self, api_key: Optional[str], timeout: float = 5, session: Optional[requests.Session] = None):
        super().__init__(timeout=timeout, session=session)
        self.api_key = api_key

    def is_enabled(self) -> bool:
        return bool(self.api_key)

    def search(self, query: str, limit: int) -> List[RelatedLink]:
        if not self.is_enabled():
            raise SearchBackendError('SEARCH_API_KEY not set')
        params = {'engine': 'google', 'q': f'{query} explained', 'num': str(limit), 'api_key': self.api_key}
        data = self._get_json(self.API_URL, params).get('organic_results', [])
        return [
            RelatedLink(title=r['title'], url=r['link'], description=r.get('snippet', ''))
            for r in data[:limit]
            if r.get('title') and r.get('link')
        ]


class StaticLinkGenerator(SearchBackend):
    name = 'static'
    SITES = (
        ('Khan Academy', 'https://www.khanacademy.org/search?page_search_query={q}'),
        ('Wikipedia', 'https://en.wikipedia.org/w/index.php?search={q}'),
        ('Britannica', 'https://www.britannica.com/search?query={q}'),
    )

    def search(self, query: str, limit: int) -> List[RelatedLink]:
        q = quote_plus(query)
        return [
            RelatedLink(title=f'Search "{query}" on {site}', url=template.format(q=q), description=f'{site} results for {query}')
            for site, template in self.SITES[:limit]
        ]
