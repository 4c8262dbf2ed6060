from .outcomes import Contained, Failed, LookupOutcome, Nearest, NotFound, outcome_to_dict
from .strategies import (
    ContainmentFirstStrategy,
    LookupStrategy,
    MultiProviderTieredStrategy,
    PixelIdentifyStrategy,
    Tier,
    nearest_search,
)

__all__ = [
    "Contained",
    "ContainmentFirstStrategy",
    "Failed",
    "LookupOutcome",
    "LookupStrategy",
    "MultiProviderTieredStrategy",
    "Nearest",
    "NotFound",
    "PixelIdentifyStrategy",
    "Tier",
    "nearest_search",
    "outcome_to_dict",
]
