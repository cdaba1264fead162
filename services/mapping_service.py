"""
Column mapping for catalog imports.

Guesses which upload column feeds which catalog field, and checks mappings
sent back by the client before they replace a session's mapping.
"""

from typing import Iterable, Optional
import structlog

from config.catalog_fields import (
    TARGET_FIELDS,
    COLUMN_ALIASES,
    RESERVED_COLUMN_ALIASES,
    MIN_PARTIAL_MATCH_LENGTH,
    TargetField,
)
from exceptions import InvalidMappingError
from utils.text_utils import normalize_header

logger = structlog.get_logger(__name__)

# Client token for "do not import this column"
IGNORE = "__ignore__"


def _match_terms(target: TargetField) -> set[str]:
    """Normalized key, label and aliases of a field."""
    terms = {normalize_header(target.key), normalize_header(target.label)}
    terms.update(normalize_header(alias) for alias in COLUMN_ALIASES.get(target.key, ()))
    terms.discard("")
    return terms


def _reserved_terms(fields: Iterable[TargetField]) -> set[str]:
    terms = {normalize_header(alias) for alias in RESERVED_COLUMN_ALIASES}
    for target in fields:
        if target.reserved:
            terms |= _match_terms(target)
    return terms


def _partial_score(header: str, terms: set[str]) -> float:
    """Overlap ratio of the best substring match, 0 when nothing qualifies."""
    best = 0.0
    for term in terms:
        shorter, longer = sorted((header, term), key=len)
        if len(shorter) < MIN_PARTIAL_MATCH_LENGTH or shorter not in longer:
            continue
        best = max(best, len(shorter) / len(longer))
    return best


def infer_mapping(
    headers: list[str],
    fields: Iterable[TargetField] = TARGET_FIELDS,
) -> dict[str, Optional[str]]:
    """
    Propose a target field for every header.

    Two passes over the headers in file order: exact matches on the
    normalized field key, label or alias first, then substring matches
    (best overlap ratio, ties resolved by registry order). A field is
    assigned at most once; a later header competing for a taken field
    resolves to None. Headers naming the catalog's own identifier, and
    reserved fields in general, are never assigned.

    Args:
        headers: Upload headers in file order
        fields: Target field registry

    Returns:
        Header -> field key, or None for columns to ignore
    """
    fields = list(fields)
    candidates = [(target, _match_terms(target)) for target in fields if not target.reserved]
    reserved = _reserved_terms(fields)

    mapping: dict[str, Optional[str]] = {header: None for header in headers}
    used: set[str] = set()
    pending: list[tuple[str, str]] = []

    # Exact pass
    for header in headers:
        normalized = normalize_header(header)
        if not normalized or normalized in reserved:
            continue
        exact = [target for target, terms in candidates if normalized in terms]
        free = next((target for target in exact if target.key not in used), None)
        if free is not None:
            mapping[header] = free.key
            used.add(free.key)
        elif not exact:
            pending.append((header, normalized))
        # else: names a field an earlier header already took

    # Substring pass
    for header, normalized in pending:
        best_key, best_score = None, 0.0
        for target, terms in candidates:
            if target.key in used:
                continue
            score = _partial_score(normalized, terms)
            if score > best_score:
                best_key, best_score = target.key, score
        if best_key:
            mapping[header] = best_key
            used.add(best_key)

    logger.debug(
        "mapping_inferred",
        headers=len(headers),
        mapped=len(used),
    )

    return mapping


def find_identifier_column(
    headers: list[str],
    fields: Iterable[TargetField] = TARGET_FIELDS,
) -> Optional[str]:
    """First header that carries the catalog's own identifier, if any."""
    reserved = _reserved_terms(fields)
    for header in headers:
        if normalize_header(header) in reserved:
            return header
    return None


def validate_mapping(
    mapping: dict[str, Optional[str]],
    headers: list[str],
    fields: Iterable[TargetField] = TARGET_FIELDS,
) -> dict[str, Optional[str]]:
    """
    Check a client-supplied mapping and complete it to cover every header.

    Headers missing from the mapping are ignored columns. None, "" and
    "__ignore__" all mean ignore.

    Returns:
        Header -> field key (or None), in header order

    Raises:
        InvalidMappingError: Unknown header, unknown or reserved target,
                             or two headers assigned to the same field
    """
    by_key = {target.key: target for target in fields}

    unknown_headers = [header for header in mapping if header not in headers]
    if unknown_headers:
        raise InvalidMappingError(
            "Mapping references columns that are not in the file",
            details={"columns": unknown_headers}
        )

    result: dict[str, Optional[str]] = {}
    claimed: dict[str, str] = {}
    for header in headers:
        key = mapping.get(header)
        if not key or key == IGNORE:
            result[header] = None
            continue

        target = by_key.get(key)
        if target is None:
            raise InvalidMappingError(
                f"Unknown target field: {key}",
                details={"column": header, "field": key}
            )
        if target.reserved:
            raise InvalidMappingError(
                f"{target.label} is managed by the catalog and cannot be imported",
                details={"column": header, "field": key}
            )
        if key in claimed:
            raise InvalidMappingError(
                f"{target.label} is mapped from more than one column",
                details={"field": key, "columns": [claimed[key], header]}
            )

        claimed[key] = header
        result[header] = key

    return result
