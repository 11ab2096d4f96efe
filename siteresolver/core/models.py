"""Data models for the Official Website Resolver."""

from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Optional, List, Dict, Any, Tuple


class DiscoveryStatus(str, Enum):
    """Terminal status of one discovery run."""
    FOUND_VALID = "FOUND_VALID"
    FOUND_INVALID = "FOUND_INVALID"
    NOT_FOUND = "NOT_FOUND"
    ERROR = "ERROR"


class ReasonCode(str, Enum):
    """Closed taxonomy of reasons attached to every non-success result."""
    REJECTED_DIRECTORY_OR_SOCIAL = "REJECTED_DIRECTORY_OR_SOCIAL"
    REJECTED_NO_MATCHING_SIGNALS = "REJECTED_NO_MATCHING_SIGNALS"
    ERROR_TIMEOUT_FETCH = "ERROR_TIMEOUT_FETCH"
    ERROR_BLOCKED = "ERROR_BLOCKED"
    ERROR_PROVIDER_RATE_LIMIT = "ERROR_PROVIDER_RATE_LIMIT"
    ERROR_CONFIG_INVALID = "ERROR_CONFIG_INVALID"
    NOT_FOUND_NO_CANDIDATES = "NOT_FOUND_NO_CANDIDATES"
    ERROR_INTERNAL = "ERROR_INTERNAL"


@dataclass(frozen=True)
class BusinessRecord:
    """Business identity under resolution. Never mutated by the resolver."""
    name: str
    city: Optional[str] = None
    province: Optional[str] = None
    address: Optional[str] = None
    phone: Optional[str] = None
    tax_id: Optional[str] = None
    category: Optional[str] = None
    existing_url: Optional[str] = None
    email: Optional[str] = None

    def __post_init__(self):
        """Validate the record."""
        if not self.name or not self.name.strip():
            raise ValueError("Business name is required")

    @classmethod
    def from_dict(cls, row: Dict[str, Any]) -> 'BusinessRecord':
        """Create BusinessRecord from a feed row.

        Args:
            row: Dictionary with record fields (feed aliases accepted)

        Returns:
            BusinessRecord instance
        """
        def pick(*keys: str) -> Optional[str]:
            for key in keys:
                value = row.get(key)
                if value is not None and str(value).strip():
                    return str(value).strip()
            return None

        return cls(
            name=pick('name', 'company_name', 'CompanyName') or '',
            city=pick('city'),
            province=pick('province'),
            address=pick('address'),
            phone=pick('phone'),
            tax_id=pick('tax_id', 'taxId', 'vat_code', 'piva', 'vat'),
            category=pick('category'),
            existing_url=pick('existing_url', 'existingUrl', 'website'),
            email=pick('email'),
        )


@dataclass(frozen=True)
class Candidate:
    """A URL proposed by a generation or search strategy, before verification."""
    url: str
    source_tag: str
    prior: float

    def __post_init__(self):
        """Validate prior confidence."""
        if not (0 <= self.prior <= 1):
            raise ValueError("Candidate prior must be between 0 and 1")


@dataclass(frozen=True)
class MatchSignals:
    """Raw signals computed by the confidence evaluator."""
    tax_id_match: bool = False
    phone_match: bool = False
    name_coverage: float = 0.0
    title_coverage: float = 0.0
    city_match: bool = False
    address_coverage: float = 0.0
    domain_coverage: float = 0.0
    has_contact_keywords: bool = False
    og_image_match: bool = False
    appears_italian: bool = True


@dataclass(frozen=True)
class Evaluation:
    """Outcome of scoring one candidate URL against one business record."""
    confidence: float
    reason_tags: Tuple[str, ...] = ()
    reason: str = ""
    matched_tax_id: Optional[str] = None
    matched_phone: Optional[str] = None
    signals: MatchSignals = field(default_factory=MatchSignals)
    final_url: Optional[str] = None
    rejection: Optional[ReasonCode] = None
    llm_adjudicated: bool = False

    def __post_init__(self):
        """Validate confidence and the tax ID invariant."""
        if not (0 <= self.confidence <= 1):
            raise ValueError("Confidence must be between 0 and 1")
        if self.matched_tax_id and self.confidence < 0.95:
            raise ValueError("A tax ID match requires confidence of at least 0.95")

    @classmethod
    def rejected(cls, code: ReasonCode, tag: str, final_url: Optional[str] = None) -> 'Evaluation':
        """Evaluation for a candidate rejected before scoring (directory, parked page...)."""
        return cls(
            confidence=0.0,
            reason_tags=(tag,),
            reason=tag.replace('_', ' '),
            final_url=final_url,
            rejection=code,
        )

    @classmethod
    def failed(cls, code: ReasonCode, tag: str, final_url: Optional[str] = None) -> 'Evaluation':
        """Evaluation for a candidate that could not be fetched."""
        return cls.rejected(code, tag, final_url)

    @property
    def is_failure(self) -> bool:
        """Whether the candidate could not be fetched at all."""
        return self.rejection in (ReasonCode.ERROR_TIMEOUT_FETCH, ReasonCode.ERROR_BLOCKED)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to plain types."""
        data = asdict(self)
        data['reason_tags'] = list(self.reason_tags)
        data['rejection'] = self.rejection.value if self.rejection else None
        return data


@dataclass(frozen=True)
class SearchResult:
    """Represents a search result returned by a search provider."""
    url: str
    title: str = ""
    snippet: str = ""
    position: int = 1

    def __post_init__(self):
        """Validate and normalize data after initialization."""
        if self.position < 0:
            raise ValueError("Search position must be 0 or greater")


@dataclass(frozen=True)
class PageContent:
    """A fetched page as reported by the page fetcher."""
    final_url: str
    status_code: int
    html: str = ""
    visible_text: str = ""
    title: str = ""
    links: Tuple[Tuple[str, str], ...] = ()  # (href, anchor text)


@dataclass(frozen=True)
class IdentityResult:
    """Legal identity returned by an identity resolver."""
    legal_name: str
    tax_id: str
    confidence: float = 1.0


@dataclass(frozen=True)
class DiscoveryResult:
    """Terminal output of one discovery run."""
    url: Optional[str]
    status: DiscoveryStatus
    confidence: float
    method: str
    layer: str
    reason_code: Optional[ReasonCode] = None
    evaluation: Optional[Evaluation] = None
    identity: Optional[IdentityResult] = None
    error: Optional[str] = None

    def __post_init__(self):
        """Validate confidence and the reason code policy."""
        if not (0 <= self.confidence <= 1):
            raise ValueError("Confidence must be between 0 and 1")
        if self.status != DiscoveryStatus.FOUND_VALID and self.reason_code is None:
            raise ValueError("Non-success results require a reason code")

    @property
    def found(self) -> bool:
        """Whether a confident match was found."""
        return self.status == DiscoveryStatus.FOUND_VALID

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to plain types.

        Returns:
            Dictionary representation suitable for JSON output
        """
        data = {
            'url': self.url,
            'status': self.status.value,
            'confidence': self.confidence,
            'method': self.method,
            'layer': self.layer,
            'reason_code': self.reason_code.value if self.reason_code else None,
            'error': self.error,
            'evaluation': self.evaluation.to_dict() if self.evaluation else None,
            'identity': asdict(self.identity) if self.identity else None,
        }
        return data
