"""
Identity normalization for business records.

Canonicalizes company names, phone numbers, tax identifiers and addresses
into comparable tokens shared by the candidate generator and the confidence
evaluator.
"""

import re
import unicodedata
from typing import List, Optional, Set

from siteresolver.core.models import BusinessRecord

LEGAL_SUFFIXES = frozenset({
    'srl', 'srls', 'spa', 'snc', 'sas', 'sapa', 'societa', 'ditta', 'impresa',
    'soc', 'co', 'ltd', 'llc', 'inc', 'group', 'holding',
    'the', 'and', 'di', 'dei', 'della', 'delle', 'del', 'de', 'e',
})

ADDRESS_NOISE = frozenset({
    'via', 'viale', 'piazza', 'pzza', 'corso', 'strada', 's', 'snc',
    'n', 'nr', 'numero', 'interno', 'int',
})

FREE_MAIL_DOMAINS = frozenset({
    'gmail.com', 'googlemail.com', 'libero.it', 'virgilio.it', 'hotmail.com',
    'hotmail.it', 'outlook.com', 'outlook.it', 'live.com', 'live.it',
    'yahoo.com', 'yahoo.it', 'tiscali.it', 'alice.it', 'tin.it', 'email.it',
    'fastwebnet.it', 'icloud.com', 'me.com', 'aruba.it',
    'pec.it', 'legalmail.it', 'arubapec.it', 'pec.libero.it', 'postacert.it',
    'cert.legalmail.it', 'registerpec.it',
})

_NON_ALNUM = re.compile(r'[^a-z0-9]+')
_PHONE_RUN = re.compile(r'\+?\d[\d\s()./-]{5,}\d')


def normalize_text(value: Optional[str]) -> str:
    """Lower-case, strip accents and collapse non-alphanumeric runs to one space."""
    if not value:
        return ''
    decomposed = unicodedata.normalize('NFD', value.lower())
    stripped = ''.join(c for c in decomposed if not unicodedata.combining(c))
    return _NON_ALNUM.sub(' ', stripped).strip()


def tokenize(value: Optional[str]) -> List[str]:
    """Split normalized text into tokens."""
    return [token for token in normalize_text(value).split(' ') if token]


def tokenize_company_name(name: Optional[str]) -> List[str]:
    """Tokens of a company name with legal suffixes and fillers removed.

    Two-character tokens are kept so brand abbreviations survive
    ("AB Meccanica SRL" -> ["ab", "meccanica"]).
    """
    return [token for token in tokenize(name) if len(token) >= 2 and token not in LEGAL_SUFFIXES]


def contains_word(normalized_text: str, token: str) -> bool:
    """Whole-word containment inside already normalized text."""
    if not token or not normalized_text:
        return False
    return (
        normalized_text == token
        or f' {token} ' in normalized_text
        or normalized_text.startswith(f'{token} ')
        or normalized_text.endswith(f' {token}')
    )


def normalize_phone(phone: Optional[str]) -> str:
    """Digits only, with a leading international '00' removed."""
    if not phone:
        return ''
    digits = re.sub(r'\D', '', phone)
    if digits.startswith('00'):
        digits = digits[2:]
    return digits


def phone_variants(phone: Optional[str]) -> Set[str]:
    """Country-code tolerant variants of a phone number.

    Args:
        phone: Raw or normalized phone number

    Returns:
        Set of digit strings that identify the same line
    """
    digits = normalize_phone(phone)
    if not digits:
        return set()

    variants = {digits}
    if digits.startswith('39') and len(digits) > 10:
        local = digits[2:]
        variants.add(local)
        if not local.startswith('0'):
            variants.add(f'0{local}')
    if digits.startswith('0') and len(digits) >= 9:
        variants.add(f'39{digits}')
    return variants


def extract_phones(text: Optional[str]) -> List[str]:
    """Extract plausible Italian phone numbers from free text.

    Returns:
        Normalized numbers in order of first appearance, without duplicates
    """
    if not text:
        return []

    phones: List[str] = []
    for raw in _PHONE_RUN.findall(text):
        digits = normalize_phone(raw)
        if len(digits) < 9 or len(digits) > 15:
            continue
        if re.match(r'^(19|20)\d{2}', digits) and len(digits) <= 10:
            continue  # year-like
        if digits.startswith('000'):
            continue
        if not (digits.startswith('39') or digits.startswith('0') or digits.startswith('3')):
            continue
        if digits not in phones:
            phones.append(digits)
    return phones


def match_phone(target: Optional[str], candidates: List[str]) -> Optional[str]:
    """Find the candidate number matching the target, tolerating prefixes.

    Returns:
        The matching candidate as found in the text, or None
    """
    variants = phone_variants(target)
    if not variants or not candidates:
        return None

    for candidate in candidates:
        if candidate in variants:
            return candidate
        for variant in sorted(variants):
            if len(variant) >= 8 and candidate.endswith(variant):
                return candidate
            if len(candidate) >= 8 and variant.endswith(candidate):
                return candidate
    return None


def normalize_tax_id(value: Optional[str]) -> str:
    """Digits of a tax ID with an optional 'IT' prefix removed."""
    if not value:
        return ''
    cleaned = re.sub(r'\s', '', value)
    cleaned = re.sub(r'^it', '', cleaned, flags=re.IGNORECASE)
    return re.sub(r'\D', '', cleaned)


def is_valid_tax_id_checksum(digits: Optional[str]) -> bool:
    """Check the Italian Partita IVA control digit (Luhn-style, mod 10)."""
    clean = normalize_tax_id(digits)
    if not re.fullmatch(r'\d{11}', clean):
        return False

    values = [int(c) for c in clean]
    total = 0
    for index in range(10):
        if index % 2 == 0:
            total += values[index]
        else:
            doubled = values[index] * 2
            total += doubled - 9 if doubled > 9 else doubled
    return (10 - total % 10) % 10 == values[10]


def is_plausible_tax_id(digits: Optional[str]) -> bool:
    """11 digits whose province-office prefix falls in a known range."""
    if not digits or not re.fullmatch(r'\d{11}', digits):
        return False
    office = int(digits[:3])
    return 1 <= office <= 100 or office in (120, 121, 888, 999)


def address_tokens(address: Optional[str]) -> List[str]:
    """Comparable address tokens, street-type noise removed, first 6 kept."""
    tokens = []
    for token in tokenize(address):
        if token.isdigit():
            if len(token) >= 2:
                tokens.append(token)
        elif len(token) >= 3 and token not in ADDRESS_NOISE:
            tokens.append(token)
    return tokens[:6]


def identity_fingerprint(record: BusinessRecord) -> str:
    """Identity half of the verification cache key."""
    return f"{normalize_text(record.name)}|{normalize_tax_id(record.tax_id)}"


def email_domain(email: Optional[str]) -> Optional[str]:
    """Domain of a business e-mail address; None for free-mail and PEC providers."""
    if not email or '@' not in email:
        return None
    domain = email.strip().lower().rsplit('@', 1)[1].strip('. ')
    if not domain or '.' not in domain:
        return None
    if domain in FREE_MAIL_DOMAINS or domain.startswith('pec.') or '.pec.' in domain:
        return None
    return domain
