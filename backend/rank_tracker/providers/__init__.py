from rank_tracker.providers.errors import (
    ProviderBadResponseError,
    ProviderError,
    ProviderNotConfiguredError,
    ProviderReportedError,
    ProviderTransportError,
)
from rank_tracker.providers.rank import (
    CustomEndpointRankProvider,
    DisabledRankProvider,
    RankLookupResult,
    RankProvider,
    SerpApiRankProvider,
    clear_position_overrides,
    fetch_keyword_position,
    get_rank_provider,
    register_position_override,
)

__all__ = [
    "CustomEndpointRankProvider",
    "DisabledRankProvider",
    "ProviderBadResponseError",
    "ProviderError",
    "ProviderNotConfiguredError",
    "ProviderReportedError",
    "ProviderTransportError",
    "RankLookupResult",
    "RankProvider",
    "SerpApiRankProvider",
    "clear_position_overrides",
    "fetch_keyword_position",
    "get_rank_provider",
    "register_position_override",
]
