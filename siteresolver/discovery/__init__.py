"""Discovery orchestration, candidate verification and collaborator adapters."""

from .orchestrator import DiscoveryLayer, DiscoveryOrchestrator
from .verifier import CandidateVerifier

__all__ = ['CandidateVerifier', 'DiscoveryLayer', 'DiscoveryOrchestrator']
