import re

_NON_ALNUM = re.compile(r"[^a-z0-9]+")


def slugify(name: str) -> str:
    """URL-safe slug: lowercase, non-alphanumeric runs collapsed to '-'"""
    return _NON_ALNUM.sub("-", name.lower()).strip("-")
