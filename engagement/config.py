"""
Indicator configuration: activity kinds, indicators and LRS settings
loaded from config/indicators.yaml.
"""

import logging
import os
from pathlib import Path
from typing import Dict, List, Optional

import yaml

from .cache import ScopeCache
from .exceptions import ConfigurationError
from .levels import ConfiguredLevelResolver, resolver_registry
from .models import FEEDBACK_ACTIONS, INDICATOR_KINDS, MAX_VALUE, MIN_VALUE
from .scorer import EngagementScorer
from .xapi_source import MAX_STATEMENTS, XAPIEventSource

logger = logging.getLogger(__name__)

ROOT = Path(__file__).parent.parent
DEFAULT_CONFIG_PATH = ROOT / "config" / "indicators.yaml"


def config_path(path=None) -> Path:
    if path is not None:
        return Path(path)
    env_path = os.getenv("ENGAGEMENT_CONFIG")
    if env_path:
        return Path(env_path)
    return DEFAULT_CONFIG_PATH


def load_config(path=None) -> Dict:
    """Load and validate the YAML configuration."""
    cfg_path = config_path(path)
    if not cfg_path.exists():
        raise ConfigurationError(f"Indicator configuration not found: {cfg_path}")

    with open(cfg_path, "r", encoding="utf-8") as f:
        try:
            raw = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in {cfg_path}: {e}") from e

    config = validate_config(raw)
    logger.info(
        f"Loaded {len(config['activity_kinds'])} activity kinds and "
        f"{len(config['indicators'])} indicators from {cfg_path}"
    )
    return config


def _validate_kind(name: str, entry) -> Dict:
    if not isinstance(entry, dict):
        raise ConfigurationError(f"Activity kind '{name}' must be a mapping")

    feedback_events = entry.get("feedback_events") or {}
    if not isinstance(feedback_events, dict):
        raise ConfigurationError(f"Activity kind '{name}': feedback_events must be a mapping")
    for action, kinds in feedback_events.items():
        if action not in FEEDBACK_ACTIONS:
            raise ConfigurationError(f"Activity kind '{name}': unknown feedback action '{action}'")
        if not isinstance(kinds, list) or not all(isinstance(k, str) for k in kinds):
            raise ConfigurationError(f"Activity kind '{name}': feedback_events.{action} must be a list of strings")

    return {
        "cognitive_depth": entry.get("cognitive_depth"),
        "social_breadth": entry.get("social_breadth"),
        "feedback_check_grades": bool(entry.get("feedback_check_grades", True)),
        "feedback_events": feedback_events,
    }


def validate_config(raw) -> Dict:
    if not isinstance(raw, dict):
        raise ConfigurationError("Indicator configuration must be a mapping")

    defaults = raw.get("defaults") or {}
    try:
        min_value = float(defaults.get("min_value", MIN_VALUE))
        max_value = float(defaults.get("max_value", MAX_VALUE))
    except (TypeError, ValueError) as e:
        raise ConfigurationError("defaults.min_value and defaults.max_value must be numbers") from e
    if not min_value < max_value:
        raise ConfigurationError("defaults.min_value must be lower than defaults.max_value")

    kinds_raw = raw.get("activity_kinds") or {}
    if not isinstance(kinds_raw, dict):
        raise ConfigurationError("activity_kinds must be a mapping")
    activity_kinds = {str(name): _validate_kind(str(name), entry) for name, entry in kinds_raw.items()}

    indicators: List[Dict] = []
    seen = set()
    for idx, entry in enumerate(raw.get("indicators") or [], start=1):
        if not isinstance(entry, dict):
            raise ConfigurationError(f"Indicator #{idx} must be a mapping")
        ind_id = str(entry.get("id", "")).strip()
        if not ind_id:
            raise ConfigurationError(f"Indicator #{idx} is missing a non-empty 'id'")
        if ind_id in seen:
            raise ConfigurationError(f"Duplicate indicator id: {ind_id}")
        seen.add(ind_id)
        if entry.get("activity_kind") not in activity_kinds:
            raise ConfigurationError(f"Indicator {ind_id}: unknown activity kind '{entry.get('activity_kind')}'")
        if entry.get("indicator_kind") not in INDICATOR_KINDS:
            raise ConfigurationError(f"Indicator {ind_id}: indicator type '{entry.get('indicator_kind')}' is invalid")
        indicators.append({
            "id": ind_id,
            "name": str(entry.get("name", ind_id)),
            "activity_kind": entry["activity_kind"],
            "indicator_kind": entry["indicator_kind"],
        })

    lrs = dict(raw.get("lrs") or {})
    lrs["endpoint"] = os.getenv("LRS_ENDPOINT", "") or lrs.get("endpoint", "")

    return {
        "defaults": {"min_value": min_value, "max_value": max_value},
        "lrs": lrs,
        "activity_kinds": activity_kinds,
        "indicators": indicators,
    }


def build_resolver(config: Dict, kind: str) -> ConfiguredLevelResolver:
    entry = config["activity_kinds"].get(kind)
    if entry is None:
        raise ConfigurationError(f"Unknown activity kind: {kind}")
    return ConfiguredLevelResolver(kind, **entry)


def build_resolvers(config: Dict) -> Dict[str, ConfiguredLevelResolver]:
    return resolver_registry([build_resolver(config, kind) for kind in config["activity_kinds"]])


def get_indicator(config: Dict, indicator_id: str) -> Dict:
    for entry in config["indicators"]:
        if entry["id"] == indicator_id:
            return entry
    raise ConfigurationError(f"Unknown indicator: {indicator_id}")


def build_scorer(
    config: Dict,
    indicator_id: str,
    activities,
    events,
    grades,
    cache: Optional[ScopeCache] = None,
) -> EngagementScorer:
    """Compose the scorer for one configured indicator."""
    indicator = get_indicator(config, indicator_id)
    return EngagementScorer(
        build_resolver(config, indicator["activity_kind"]),
        indicator["indicator_kind"],
        activities,
        events,
        grades,
        min_value=config["defaults"]["min_value"],
        max_value=config["defaults"]["max_value"],
        cache=cache,
    )


def build_scorers(config: Dict, activities, events, grades) -> Dict[str, EngagementScorer]:
    """All configured indicators for one analysable unit, sharing one cache."""
    cache = ScopeCache()
    scorers = {}
    for indicator in config["indicators"]:
        scorers[indicator["id"]] = build_scorer(config, indicator["id"], activities, events, grades, cache=cache)
    return scorers


def build_event_source(config: Dict):
    """XAPIEventSource from the ``lrs`` section; None when no endpoint is configured."""
    lrs = config.get("lrs") or {}
    if not lrs.get("endpoint"):
        return None
    return XAPIEventSource(
        endpoint=lrs["endpoint"],
        mode=lrs.get("mode", "auto"),
        timeout=int(lrs.get("timeout", 120)),
        page_size=int(lrs.get("page_size", 500)),
        max_retries=int(lrs.get("max_retries", 3)),
        max_statements=int(lrs.get("max_statements", MAX_STATEMENTS)),
    )
