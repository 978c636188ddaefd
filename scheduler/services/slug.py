import re

MAX_SLUG_LENGTH = 60

_SLUG_PATTERN = re.compile(r'^[a-z0-9-]{2,60}$')


def slugify(value: str) -> str:
    slug = value.lower().strip()
    slug = re.sub(r'[^a-z0-9\s-]', '', slug)
    slug = re.sub(r'\s+', '-', slug)
    slug = re.sub(r'-+', '-', slug)
    return slug[:MAX_SLUG_LENGTH]


def is_valid_slug(value: str) -> bool:
    return bool(_SLUG_PATTERN.match(value))
