"""Domain candidate generation strategies."""

from .generator import CandidateGenerator
from .strategies import DomainStrategy, GenerationContext, default_strategies

__all__ = ['CandidateGenerator', 'DomainStrategy', 'GenerationContext', 'default_strategies']
