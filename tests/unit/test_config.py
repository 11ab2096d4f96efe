"""Tests for configuration management."""

import os
import tempfile

import pytest
import yaml

from siteresolver.core.config import Config, DiscoverySettings
from siteresolver.core.exceptions import ConfigurationError


class TestConfig:
    """Test configuration management functionality."""

    @pytest.fixture
    def sample_config(self):
        """Sample configuration data."""
        return {
            'search': {
                'enabled': True,
                'provider': 'duckduckgo',
                'api_key': '${TEST_API_KEY}',
                'rate_limit': 4.5,
                'timeout': 30,
                'max_retries': 3,
                'results_per_query': 7,
            },
            'discovery': {
                'default_mode': 'DEEP',
                'thresholds': {'acceptance': 0.75, 'min_valid': 0.60, 'invalid_floor': 0.35},
                'verification_concurrency': 6,
                'call_timeout': 45,
                'llm': {'band': [0.3, 0.8], 'ceiling': 0.85},
            },
            'scoring': {'weights': {'phone': 0.6}},
            'cache': {'ttl_seconds': 600, 'max_entries': 100},
            'rate_limit': {'min_delay': 1.0, 'max_delay': 20, 'max_wait': 5},
            'fetcher': {'timeout': 10, 'retries': 2, 'retry_backoff': 0.25},
            'filtering': {'blocklist': ['cylex.it', 'hotfrog.it']},
            'logging': {
                'level': 'INFO',
                'format': '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
                'file': None,
            },
        }

    @pytest.fixture
    def config_file(self, sample_config):
        """Create temporary config file for testing."""
        with tempfile.NamedTemporaryFile(mode='w', suffix='.yaml', delete=False) as f:
            yaml.dump(sample_config, f)
            temp_path = f.name

        yield temp_path

        os.unlink(temp_path)

    @pytest.fixture
    def mock_env_vars(self, monkeypatch):
        """Set up environment variables for testing."""
        monkeypatch.setenv('TEST_API_KEY', 'test_key_1234567')

    def test_config_loading(self, config_file, mock_env_vars):
        """Test basic configuration loading and placeholder substitution."""
        config = Config(config_file)

        assert config.get('search.provider') == 'duckduckgo'
        assert config.get('search.api_key') == 'test_key_1234567'
        assert config.get('discovery.thresholds.acceptance') == 0.75

    def test_missing_environment_variable(self, config_file, monkeypatch):
        """Test handling of missing environment variables."""
        monkeypatch.delenv('TEST_API_KEY', raising=False)
        with pytest.raises(ConfigurationError, match="Environment variable not set: TEST_API_KEY"):
            Config(config_file)

    def test_config_validation_success(self, config_file, mock_env_vars):
        config = Config(config_file)
        assert config.validate() is True

    def test_config_validation_missing_section(self, config_file, mock_env_vars):
        config = Config(config_file)
        config._config.pop('cache')

        with pytest.raises(ConfigurationError, match="Missing configuration section: cache"):
            config.validate()

    def test_threshold_ordering_validated(self, config_file, mock_env_vars):
        config = Config(config_file)
        config._config['discovery']['thresholds']['min_valid'] = 0.9

        with pytest.raises(ConfigurationError, match="min_valid cannot exceed"):
            config.validate()

    def test_threshold_range_validated(self, config_file, mock_env_vars):
        config = Config(config_file)
        config._config['discovery']['thresholds']['acceptance'] = 1.5

        with pytest.raises(ConfigurationError, match="must be between 0 and 1"):
            config.validate()

    def test_non_numeric_weight_rejected(self, config_file, mock_env_vars):
        config = Config(config_file)
        config._config['scoring']['weights']['phone'] = 'high'

        with pytest.raises(ConfigurationError, match="Scoring weight phone must be numeric"):
            config.validate()

    @pytest.mark.parametrize("section,key,value", [
        ('discovery', 'call_timeout', 'fast'),
        ('cache', 'ttl_seconds', None),
        ('rate_limit', 'max_delay', 'slow'),
        ('fetcher', 'timeout', [15]),
    ])
    def test_non_numeric_setting_rejected(self, config_file, mock_env_vars, section, key, value):
        config = Config(config_file)
        config._config[section][key] = value

        with pytest.raises(ConfigurationError, match="must be a number"):
            config.validate()

    def test_non_numeric_threshold_rejected(self, config_file, mock_env_vars):
        config = Config(config_file)
        config._config['discovery']['thresholds']['acceptance'] = 'high'

        with pytest.raises(ConfigurationError, match="Threshold acceptance must be a number"):
            config.validate()

    def test_numeric_strings_accepted(self, config_file, mock_env_vars):
        config = Config(config_file)
        config._config['discovery']['call_timeout'] = '30'
        config._config['fetcher']['timeout'] = '10'

        assert config.validate() is True

    @pytest.mark.parametrize("api_key", ["", "   ", "short"])
    def test_api_key_validation(self, sample_config, api_key):
        """Missing, blank and short API keys are rejected while search is enabled."""
        sample_config['search']['api_key'] = api_key
        config = Config.from_dict(sample_config)

        with pytest.raises(ConfigurationError) as exc_info:
            config.validate()
        assert "DUCKDUCKGO_API_KEY" in str(exc_info.value)

    def test_api_key_not_required_when_search_disabled(self, sample_config):
        sample_config['search'] = {'enabled': False}
        assert Config.from_dict(sample_config).validate() is True

    def test_get_with_default(self, config_file, mock_env_vars):
        config = Config(config_file)

        assert config.get('search.nonexistent', 'default_value') == 'default_value'
        assert config.get('nonexistent.section.key') is None

    def test_invalid_yaml_file(self):
        with tempfile.NamedTemporaryFile(mode='w', suffix='.yaml', delete=False) as f:
            f.write("invalid: yaml: content: [")
            temp_path = f.name

        try:
            with pytest.raises(ConfigurationError, match="Invalid YAML configuration"):
                Config(temp_path)
        finally:
            os.unlink(temp_path)

    def test_missing_config_file(self):
        with pytest.raises(ConfigurationError, match="Configuration file not found"):
            Config("nonexistent/config.yaml")


class TestDiscoverySettings:
    """Test typed settings derived from a configuration."""

    def test_from_config(self, monkeypatch):
        monkeypatch.setenv('TEST_API_KEY', 'test_key_1234567')
        config = Config.from_dict({
            'search': {'api_key': '${TEST_API_KEY}', 'results_per_query': 7},
            'discovery': {
                'thresholds': {'acceptance': 0.8, 'min_valid': 0.6, 'invalid_floor': 0.3},
                'call_timeout': 45,
                'llm': {'band': [0.3, 0.8], 'ceiling': 0.85},
            },
            'fetcher': {'retries': 2},
            'filtering': {'blocklist': ['cylex.it']},
            'scoring': {'weights': {'phone': 0.6}},
        })

        settings = DiscoverySettings.from_config(config)

        assert settings.acceptance_threshold == 0.8
        assert settings.invalid_floor == 0.3
        assert settings.call_timeout == 45.0
        assert settings.results_per_query == 7
        assert settings.fetch_retries == 2
        assert settings.llm_band == (0.3, 0.8)
        assert settings.llm_ceiling == 0.85
        assert settings.extra_blocklist == ('cylex.it',)
        assert settings.scoring_weights == {'phone': 0.6}

    def test_defaults_for_missing_values(self):
        settings = DiscoverySettings.from_config(Config.from_dict({}))
        assert settings == DiscoverySettings()

    def test_shipped_config_is_valid(self, monkeypatch):
        """The bundled config/config.yaml validates once the API key is set."""
        monkeypatch.setenv('DUCKDUCKGO_API_KEY', 'abcdefghijklmnop')
        config_path = os.path.join(os.path.dirname(__file__), '..', '..', 'config', 'config.yaml')
        assert Config(config_path).validate() is True
