"""
Community of inquiry engagement indicators: cognitive depth and social
breadth scores computed from activity logs and grades.
"""

from .cache import ScopeCache
from .config import build_scorer, build_scorers, load_config
from .exceptions import ConfigurationError
from .grades import GradeBook
from .levels import ConfiguredLevelResolver, LevelResolver, validate_resolver
from .log_index import LogIndex, build_log_index
from .models import (
    ActivityInstance,
    Event,
    GradeItem,
    INDICATOR_COGNITIVE,
    INDICATOR_SOCIAL,
    MAX_VALUE,
    MIN_VALUE,
    Sample,
    TimeWindow,
)
from .scorer import EngagementScorer
from .sources import (
    ActivityCatalog,
    EventLogSource,
    GradeSource,
    InMemoryActivityCatalog,
    InMemoryEventSource,
    InMemoryGradeSource,
)
from .xapi_source import XAPIEventSource

__version__ = "0.1.0"
