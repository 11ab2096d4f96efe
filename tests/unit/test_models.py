"""Tests for data models and mode profiles."""

import pytest

from siteresolver.core.exceptions import ConfigurationError
from siteresolver.core.models import (
    BusinessRecord,
    Candidate,
    DiscoveryResult,
    DiscoveryStatus,
    Evaluation,
    ReasonCode,
    SearchResult,
)
from siteresolver.core.modes import (
    MODE_PROFILES,
    DiscoveryMode,
    ModeProfile,
    effective_threshold,
    get_profile,
)


class TestBusinessRecord:
    """Test BusinessRecord data model."""

    def test_requires_name(self):
        with pytest.raises(ValueError, match="Business name is required"):
            BusinessRecord(name="   ")

    def test_from_dict_accepts_feed_aliases(self):
        record = BusinessRecord.from_dict({
            'company_name': 'Rossi Impianti SRL',
            'city': 'Milano',
            'vat_code': 'IT12345678901',
            'website': 'https://rossiimpianti.it',
            'phone': '',
        })
        assert record.name == 'Rossi Impianti SRL'
        assert record.tax_id == 'IT12345678901'
        assert record.existing_url == 'https://rossiimpianti.it'
        assert record.phone is None

    def test_record_is_immutable(self):
        record = BusinessRecord(name="Rossi")
        with pytest.raises(Exception):
            record.name = "Bianchi"


class TestEvaluation:
    """Test Evaluation invariants."""

    def test_confidence_range(self):
        with pytest.raises(ValueError):
            Evaluation(confidence=1.2)

    def test_tax_id_match_requires_high_confidence(self):
        with pytest.raises(ValueError, match="tax ID match"):
            Evaluation(confidence=0.5, matched_tax_id="12345678901")
        assert Evaluation(confidence=1.0, matched_tax_id="12345678901").matched_tax_id

    def test_rejected_and_failed(self):
        rejected = Evaluation.rejected(ReasonCode.REJECTED_DIRECTORY_OR_SOCIAL, 'directory_or_social')
        assert rejected.confidence == 0.0
        assert rejected.reason_tags == ('directory_or_social',)
        assert not rejected.is_failure

        failed = Evaluation.failed(ReasonCode.ERROR_TIMEOUT_FETCH, 'fetch_timeout')
        assert failed.is_failure

    def test_to_dict(self):
        evaluation = Evaluation(confidence=0.8, reason_tags=('phone_match', 'city_match'),
                                rejection=None, final_url='https://a.it')
        data = evaluation.to_dict()
        assert data['reason_tags'] == ['phone_match', 'city_match']
        assert data['rejection'] is None
        assert data['signals']['phone_match'] is False


class TestCandidateAndResults:
    """Test Candidate, SearchResult and DiscoveryResult."""

    def test_candidate_prior_range(self):
        with pytest.raises(ValueError):
            Candidate(url="https://a.it", source_tag="domain-guess", prior=1.5)

    def test_search_result_position(self):
        with pytest.raises(ValueError):
            SearchResult(url="https://a.it", position=-1)

    def test_non_success_requires_reason_code(self):
        with pytest.raises(ValueError, match="reason code"):
            DiscoveryResult(url=None, status=DiscoveryStatus.NOT_FOUND, confidence=0.0,
                            method='none', layer='EXHAUSTED')

    def test_found_result_serialization(self):
        result = DiscoveryResult(
            url="https://rossiimpianti.it", status=DiscoveryStatus.FOUND_VALID, confidence=0.9,
            method="domain-guess", layer="SWARM_SEARCH",
            evaluation=Evaluation(confidence=0.9, reason_tags=('domain_match',)),
        )
        data = result.to_dict()
        assert result.found
        assert data['status'] == 'FOUND_VALID'
        assert data['reason_code'] is None
        assert data['evaluation']['reason_tags'] == ['domain_match']


class TestModeProfiles:
    """Test discovery modes and threshold policy."""

    def test_parse_case_insensitive(self):
        assert DiscoveryMode.parse("deep") is DiscoveryMode.DEEP
        assert DiscoveryMode.parse(DiscoveryMode.FAST) is DiscoveryMode.FAST

    def test_parse_unknown_mode(self):
        with pytest.raises(ConfigurationError, match="Unknown discovery mode"):
            DiscoveryMode.parse("turbo")

    def test_only_exhaustive_runs_fallback(self):
        assert get_profile("EXHAUSTIVE").run_exhaustive
        assert not any(get_profile(m).run_exhaustive for m in ("FAST", "DEEP", "AGGRESSIVE"))

    def test_threshold_monotonicity(self):
        """More aggressive modes never raise the threshold or lower the cap."""
        ordered = [MODE_PROFILES[m] for m in DiscoveryMode]
        thresholds = [effective_threshold(0.75, p) for p in ordered]
        caps = [p.max_candidates for p in ordered]
        assert thresholds == sorted(thresholds, reverse=True)
        assert caps == sorted(caps)

    def test_effective_threshold_values_and_clamp(self):
        assert effective_threshold(0.75, get_profile("FAST")) == 0.8
        assert effective_threshold(0.75, get_profile("DEEP")) == 0.75
        assert effective_threshold(0.75, get_profile("EXHAUSTIVE")) == 0.67
        assert effective_threshold(0.05, get_profile("AGGRESSIVE")) == 0.10
        assert effective_threshold(0.98, get_profile("FAST")) == 0.99

    def test_profile_validation(self):
        with pytest.raises(ValueError):
            ModeProfile(threshold_delta=0.0, max_candidates=0, run_exhaustive=False)
