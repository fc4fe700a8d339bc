"""Exceptions raised inside the price refresh pipeline.

None of these ever reach an API caller: fetch errors stop at the fetcher,
AllSourcesExhausted stops at the aggregator, and PersistenceError is logged.
"""


class CofferError(Exception):
    pass


class FetchError(CofferError):
    """A single provider could not produce a candidate."""

    def __init__(self, source: str, message: str):
        super().__init__(f"{source}: {message}")
        self.source = source


class FetchTimeout(FetchError):
    pass


class FetchNetworkError(FetchError):
    pass


class FetchParseError(FetchError):
    pass


class AllSourcesExhausted(CofferError):
    """Every provider in a chain failed or was rejected."""

    def __init__(self, chain: str, tried: list[str]):
        super().__init__(f"{chain}: no provider accepted (tried {', '.join(tried) or 'none'})")
        self.chain = chain
        self.tried = tried


class PersistenceError(CofferError):
    pass
