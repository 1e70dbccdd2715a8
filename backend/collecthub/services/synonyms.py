"""Ordered literal find/replace rewriting used by the ingestion endpoints."""


def parse_synonyms(text: str | None) -> list[tuple[str, str]]:
    """Parse ``find=replace`` lines.

    Only trailing whitespace of the find side and leading whitespace of the
    replace side are stripped, so `` S4=Season 4`` keeps its leading space.
    An empty replacement deletes the match. Lines without ``=`` are ignored.
    """
    pairs: list[tuple[str, str]] = []
    for line in (text or "").splitlines():
        if not line.strip():
            continue
        find, sep, replace = line.partition("=")
        if not sep:
            continue
        find = find.rstrip()
        if not find:
            continue
        pairs.append((find, replace.lstrip()))
    return pairs


def apply_synonyms(value: str, pairs: list[tuple[str, str]]) -> str:
    """Apply every pair in order; later pairs see the output of earlier ones."""
    for find, replace in pairs:
        value = value.replace(find, replace)
    return value
