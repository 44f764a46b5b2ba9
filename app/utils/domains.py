import re
from typing import Optional

# Lower-case labels of [a-z0-9] joined by single hyphens, alphabetic TLD
DOMAIN_RE = re.compile(r"^([a-z0-9]+(-[a-z0-9]+)*\.)+[a-z]{2,}$")
MAX_DOMAIN_LENGTH = 253
MAX_LABEL_LENGTH = 63


def normalize_domain(domain: Optional[str]) -> str:
    if not isinstance(domain, str):
        return ""
    return domain.strip().lower().rstrip(".")


def is_valid_domain(domain: str) -> bool:
    if not domain or len(domain) > MAX_DOMAIN_LENGTH:
        return False
    if not DOMAIN_RE.match(domain):
        return False
    return all(len(label) <= MAX_LABEL_LENGTH for label in domain.split("."))
