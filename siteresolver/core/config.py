"""Configuration management for the Official Website Resolver."""

import os
import logging
from dataclasses import dataclass, field
from typing import Dict, Any, Optional, List, Tuple

import yaml
from dotenv import load_dotenv

from siteresolver.core.exceptions import ConfigurationError


def _number(value: Any, label: str) -> float:
    """Numeric configuration value; YAML strings such as '30' are accepted."""
    if isinstance(value, bool):
        raise ConfigurationError(f"{label} must be a number, got {value!r}")
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ConfigurationError(f"{label} must be a number, got {value!r}")


class Config:
    """Configuration manager for the application."""

    REQUIRED_SECTIONS = ['search', 'discovery', 'scoring', 'cache', 'rate_limit', 'fetcher', 'logging']

    def __init__(self, config_path: str = "config/config.yaml", data: Optional[Dict[str, Any]] = None):
        """
        Initialize configuration.

        Args:
            config_path: Path to YAML configuration file
            data: Already-parsed configuration; skips reading config_path
        """
        load_dotenv()  # Load environment variables from .env file
        self.config_path = config_path
        self.logger = logging.getLogger('site_resolver')

        if data is not None:
            self._config = self._process_env_variables(data)
        else:
            self._config = self._load_config()

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Config':
        """Build a configuration from a dictionary (placeholders still resolved)."""
        return cls(config_path="<dict>", data=data)

    def _load_config(self) -> Dict[str, Any]:
        """Load configuration from YAML file."""
        try:
            with open(self.config_path, 'r') as file:
                config = yaml.safe_load(file)
        except FileNotFoundError:
            raise ConfigurationError(f"Configuration file not found: {self.config_path}")
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML configuration: {e}")

        if config is None:
            config = {}
        if not isinstance(config, dict):
            raise ConfigurationError(f"Configuration root must be a mapping: {self.config_path}")
        self.logger.info(f"Configuration loaded from {self.config_path}")
        return self._process_env_variables(config)

    def _process_env_variables(self, config: Dict[str, Any]) -> Dict[str, Any]:
        """Process environment variable placeholders in configuration."""
        def process_value(value):
            if isinstance(value, str) and value.startswith("${") and value.endswith("}"):
                env_var = value[2:-1]
                env_value = os.getenv(env_var)
                if env_value is None:
                    raise ConfigurationError(f"Environment variable not set: {env_var}")
                return env_value
            elif isinstance(value, dict):
                return {k: process_value(v) for k, v in value.items()}
            elif isinstance(value, list):
                return [process_value(item) for item in value]
            return value

        return process_value(config)  # type: ignore

    def get(self, key_path: str, default: Any = None) -> Any:
        """Get configuration value using dot notation.

        Args:
            key_path: Dot-separated key path (e.g., 'discovery.thresholds.acceptance')
            default: Default value if key not found

        Returns:
            Configuration value or default
        """
        keys = key_path.split('.')
        value = self._config

        for key in keys:
            if isinstance(value, dict) and key in value:
                value = value[key]
            else:
                return default

        return value

    @property
    def search_config(self) -> Dict[str, Any]:
        """Get search configuration section."""
        return self._config.get('search', {})

    @property
    def discovery_config(self) -> Dict[str, Any]:
        """Get discovery configuration section."""
        return self._config.get('discovery', {})

    @property
    def scoring_config(self) -> Dict[str, Any]:
        """Get scoring configuration section."""
        return self._config.get('scoring', {})

    @property
    def cache_config(self) -> Dict[str, Any]:
        """Get verification cache configuration section."""
        return self._config.get('cache', {})

    @property
    def rate_limit_config(self) -> Dict[str, Any]:
        """Get rate limiter configuration section."""
        return self._config.get('rate_limit', {})

    @property
    def fetcher_config(self) -> Dict[str, Any]:
        """Get page fetcher configuration section."""
        return self._config.get('fetcher', {})

    @property
    def filtering_config(self) -> Dict[str, Any]:
        """Get filtering configuration section."""
        return self._config.get('filtering', {})

    @property
    def logging_config(self) -> Dict[str, Any]:
        """Get logging configuration section."""
        return self._config.get('logging', {})

    def get_all(self) -> Dict[str, Any]:
        """Get entire configuration as dictionary.

        Returns:
            Complete configuration dictionary
        """
        return self._config.copy()

    def validate(self) -> bool:
        """Validate configuration completeness.

        Returns:
            True if configuration is valid

        Raises:
            ConfigurationError: If configuration is invalid
        """
        for section in self.REQUIRED_SECTIONS:
            if section not in self._config:
                raise ConfigurationError(f"Missing configuration section: {section}")

        # Search provider
        search = self.search_config
        if search.get('enabled', True):
            api_key = search.get('api_key') or ''
            if len(str(api_key).strip()) < 10:
                raise ConfigurationError(
                    "Search API key is required when the search provider is enabled. "
                    "Please set the DUCKDUCKGO_API_KEY environment variable."
                )

        # Thresholds
        thresholds = self.get('discovery.thresholds', {}) or {}
        values = {}
        for name in ('acceptance', 'min_valid', 'invalid_floor'):
            value = thresholds.get(name)
            if value is None:
                raise ConfigurationError(f"Missing discovery threshold: {name}")
            values[name] = _number(value, f"Threshold {name}")
            if not (0 <= values[name] <= 1):
                raise ConfigurationError(f"Threshold {name} must be between 0 and 1, got {value}")
        if values['min_valid'] > values['acceptance']:
            raise ConfigurationError("Threshold min_valid cannot exceed the acceptance threshold")
        if values['invalid_floor'] > values['min_valid']:
            raise ConfigurationError("Threshold invalid_floor cannot exceed min_valid")

        discovery = self.discovery_config
        for name in ('verification_concurrency', 'call_timeout'):
            if name not in discovery or _number(discovery[name], f"Discovery {name}") <= 0:
                raise ConfigurationError(f"Discovery {name} must be positive")

        # Cache
        cache = self.cache_config
        if _number(cache.get('ttl_seconds', 0), "Cache TTL") <= 0:
            raise ConfigurationError("Cache TTL must be positive")
        if _number(cache.get('max_entries', 0), "Cache size") <= 0:
            raise ConfigurationError("Cache size must be positive")

        # Rate limiter
        limiter = self.rate_limit_config
        min_delay = _number(limiter.get('min_delay', 0), "Rate limit min_delay")
        max_delay = _number(limiter.get('max_delay', 0), "Rate limit max_delay")
        if min_delay < 0 or max_delay <= 0:
            raise ConfigurationError("Rate limit delays must be positive")
        if min_delay > max_delay:
            raise ConfigurationError("Rate limit min_delay cannot exceed max_delay")

        # Fetcher
        if _number(self.fetcher_config.get('timeout', 0), "Fetcher timeout") <= 0:
            raise ConfigurationError("Fetcher timeout must be positive")

        # Scoring weights are partial overrides; every value must be a number
        weights = self.scoring_config.get('weights', {}) or {}
        for name, value in weights.items():
            if not isinstance(value, (int, float)):
                raise ConfigurationError(f"Scoring weight {name} must be numeric")

        return True


@dataclass(frozen=True)
class DiscoverySettings:
    """Typed discovery settings consumed by the orchestrator."""
    acceptance_threshold: float = 0.75
    min_valid_threshold: float = 0.60
    invalid_floor: float = 0.35
    verification_concurrency: int = 10
    call_timeout: float = 90.0
    fetch_retries: int = 1
    retry_backoff: float = 0.5
    guess_limit: int = 40
    results_per_query: int = 5
    supplemental_pages: int = 4
    llm_band: Tuple[float, float] = (0.20, 0.90)
    llm_ceiling: float = 0.90
    cache_ttl_seconds: float = 900.0
    cache_max_entries: int = 2000
    rate_min_delay: float = 1.5
    rate_max_delay: float = 30.0
    rate_max_wait: float = 10.0
    extra_blocklist: Tuple[str, ...] = ()
    scoring_weights: Dict[str, float] = field(default_factory=dict)

    @classmethod
    def from_config(cls, config: Config) -> 'DiscoverySettings':
        """Build settings from a loaded configuration.

        Args:
            config: Loaded configuration

        Returns:
            DiscoverySettings with defaults for missing values
        """
        defaults = cls()
        band: List[float] = config.get('discovery.llm.band', list(defaults.llm_band))
        return cls(
            acceptance_threshold=float(config.get('discovery.thresholds.acceptance', defaults.acceptance_threshold)),
            min_valid_threshold=float(config.get('discovery.thresholds.min_valid', defaults.min_valid_threshold)),
            invalid_floor=float(config.get('discovery.thresholds.invalid_floor', defaults.invalid_floor)),
            verification_concurrency=int(config.get('discovery.verification_concurrency', defaults.verification_concurrency)),
            call_timeout=float(config.get('discovery.call_timeout', defaults.call_timeout)),
            fetch_retries=int(config.get('fetcher.retries', defaults.fetch_retries)),
            retry_backoff=float(config.get('fetcher.retry_backoff', defaults.retry_backoff)),
            guess_limit=int(config.get('discovery.guess_limit', defaults.guess_limit)),
            results_per_query=int(config.get('search.results_per_query', defaults.results_per_query)),
            supplemental_pages=int(config.get('discovery.supplemental_pages', defaults.supplemental_pages)),
            llm_band=(float(band[0]), float(band[1])),
            llm_ceiling=float(config.get('discovery.llm.ceiling', defaults.llm_ceiling)),
            cache_ttl_seconds=float(config.get('cache.ttl_seconds', defaults.cache_ttl_seconds)),
            cache_max_entries=int(config.get('cache.max_entries', defaults.cache_max_entries)),
            rate_min_delay=float(config.get('rate_limit.min_delay', defaults.rate_min_delay)),
            rate_max_delay=float(config.get('rate_limit.max_delay', defaults.rate_max_delay)),
            rate_max_wait=float(config.get('rate_limit.max_wait', defaults.rate_max_wait)),
            extra_blocklist=tuple(config.get('filtering.blocklist', []) or []),
            scoring_weights=dict(config.get('scoring.weights', {}) or {}),
        )
