import re
import unicodedata
from typing import Callable

SLUG_RE = re.compile(r"^[a-z0-9]+(?:-[a-z0-9]+)*$")
MIN_SLUG_LENGTH = 3
MAX_SLUG_LENGTH = 100


def slugify(text: str) -> str:
    """'My  Portfolio_Site!' -> 'my-portfolio-site', 'Café' -> 'cafe'."""
    nfkd = unicodedata.normalize("NFKD", text or "")
    value = "".join(c for c in nfkd if not unicodedata.combining(c)).lower().strip()
    value = re.sub(r"[^a-z0-9\s_-]", "", value)
    value = re.sub(r"[\s_-]+", "-", value)
    return value.strip("-")


def validate_slug(slug: str) -> bool:
    if not isinstance(slug, str):
        return False
    return MIN_SLUG_LENGTH <= len(slug) <= MAX_SLUG_LENGTH and bool(SLUG_RE.match(slug))


def generate_unique_slug(name: str, exists: Callable[[str], bool]) -> str:
    """Slug for ``name`` with a numeric suffix until ``exists`` says it is free."""
    base = slugify(name)[:MAX_SLUG_LENGTH - 4]
    if len(base) < MIN_SLUG_LENGTH:
        base = f"{base}-site".strip("-")
    slug = base
    counter = 1
    while exists(slug):
        slug = f"{base}-{counter}"
        counter += 1
    return slug
