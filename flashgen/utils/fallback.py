from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Iterable, List, Optional, Tuple

from flashgen.utils.logger import get_logger

LOG = get_logger()


@dataclass
class ProviderFailure:
    provider: str
    outcome: str
    error: Exception


class AllProvidersFailed(Exception):
    def __init__(self, failures: List[ProviderFailure]):
        names = ', '.join(f'{f.provider}={f.outcome}' for f in failures) or 'no providers'
        super().__init__(f'all providers failed: {names}')
        self.failures = failures


async def first_success(
    providers: Iterable[Any],
    attempt: Callable[[Any], Awaitable[Any]],
    classify: Optional[Callable[[Exception], str]] = None,
) -> Tuple[Any, Any]:
    """Try providers in order; the first one that returns wins.

    Failures are classified and the next provider is tried. Cancellation is
    never swallowed.
    """
    failures: List[ProviderFailure] = []
    for provider in providers:
        name = getattr(provider, 'name', repr(provider))
        try:
            result = await attempt(provider)
        except Exception as e:
            outcome = classify(e) if classify else 'other_failure'
            failures.append(ProviderFailure(name, outcome, e))
            LOG.debug('provider_failed', extra={'provider': name, 'outcome': outcome, 'error': str(e)})
            continue
        return provider, result
    raise AllProvidersFailed(failures)
