import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

from driver_identity.config import FUZZY_MIN_SCORE
from driver_identity.services.aliases import has_alias_link
from driver_identity.services.normalization import is_placeholder_name, normalize_name
from driver_identity.services.records import Fleet, Match, MatchMethod, RosterDriver
from driver_identity.services.similarity import similarity

logger = logging.getLogger(__name__)

EMPLOYEE_ID_CONFIDENCE = 1.0
EXACT_MATCH_CONFIDENCE = 0.95
FUZZY_CONFIDENCE_CAP = 0.9
REVERSED_ORDER_DISCOUNT = 0.95
TOKEN_OVERLAP_SCORE = 0.85
ALIAS_SCORE = 0.8

# Carrier / group labels used by the feeds, normalized, mapped to roster fleets
FLEET_HINTS: Dict[str, str] = {
    "stevemacs": Fleet.STEVEMACS.value,
    "smb": Fleet.STEVEMACS.value,
    "kewdale": Fleet.STEVEMACS.value,
    "great southern fuels": Fleet.GREAT_SOUTHERN_FUELS.value,
    "great southern fuel": Fleet.GREAT_SOUTHERN_FUELS.value,
    "gsf": Fleet.GREAT_SOUTHERN_FUELS.value,
}


def resolve_fleet(fleet_hint: Optional[str]) -> Optional[str]:
    """Normalized fleet name for a feed's carrier / fleet label, or None."""
    hint = normalize_name(fleet_hint)
    if not hint:
        return None
    return normalize_name(FLEET_HINTS.get(hint, hint))


@dataclass(frozen=True)
class _IndexedDriver:
    driver: RosterDriver
    name_norm: str
    tokens: Tuple[str, ...]
    fleet_norm: str
    employee_id: Optional[str]


def _clean_employee_id(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    cleaned = str(value).strip()
    return cleaned or None


def fuzzy_score(name_norm: str, name_tokens: Sequence[str], candidate_norm: str,
                candidate_tokens: Sequence[str]) -> float:
    """
    Uncapped fuzzy score of an external name against one roster name: the
    maximum of direct similarity, reversed-order similarity (discounted),
    token overlap and nickname aliasing.
    """
    score = similarity(name_norm, candidate_norm)

    if len(name_tokens) >= 2:
        reversed_tokens = [name_tokens[-1], *name_tokens[1:-1], name_tokens[0]]
        reversed_score = similarity(" ".join(reversed_tokens), candidate_norm) * REVERSED_ORDER_DISCOUNT
        score = max(score, reversed_score)

    shared = set(name_tokens) & set(candidate_tokens)
    if len(shared) >= 2:
        score = max(score, TOKEN_OVERLAP_SCORE)

    if has_alias_link(name_tokens, candidate_tokens):
        score = max(score, ALIAS_SCORE)

    return score


class DriverMatcher:
    """
    Matches external driver names against a fixed roster snapshot.

    The snapshot is indexed once; match() is a pure function of its inputs
    and the index, so one matcher can be shared across threads.
    """

    def __init__(self, roster: Sequence[RosterDriver], min_score: Optional[float] = None):
        self.min_score = FUZZY_MIN_SCORE if min_score is None else min_score
        self._drivers: List[_IndexedDriver] = [
            _IndexedDriver(
                driver=driver,
                name_norm=driver.full_name_norm,
                tokens=tuple(driver.full_name_norm.split()) if driver.full_name_norm else (),
                fleet_norm=normalize_name(driver.fleet),
                employee_id=_clean_employee_id(driver.employee_id),
            )
            for driver in roster
        ]
        self._by_fleet: Dict[str, List[_IndexedDriver]] = {}
        for indexed in self._drivers:
            self._by_fleet.setdefault(indexed.fleet_norm, []).append(indexed)

    def __len__(self) -> int:
        return len(self._drivers)

    def candidates(self, fleet_hint: Optional[str]) -> List[_IndexedDriver]:
        fleet = resolve_fleet(fleet_hint)
        if fleet is None:
            return self._drivers
        filtered = self._by_fleet.get(fleet)
        if not filtered:
            # Inconsistent fleet labels upstream: fall back to the whole roster
            return self._drivers
        return filtered

    def match(self, external_name: Optional[str], employee_id: Optional[str] = None,
              fleet_hint: Optional[str] = None) -> Optional[Match]:
        name_norm = normalize_name(external_name)
        if not name_norm:
            return None

        candidates = self.candidates(fleet_hint)

        wanted_employee_id = _clean_employee_id(employee_id)
        if wanted_employee_id:
            for indexed in candidates:
                if indexed.employee_id == wanted_employee_id:
                    return Match(
                        driver_id=indexed.driver.id,
                        confidence=EMPLOYEE_ID_CONFIDENCE,
                        method=MatchMethod.EMPLOYEE_ID_MATCH,
                        driver_name=indexed.driver.full_name,
                    )

        # Placeholders carry no name information; only the employee id can resolve them
        if is_placeholder_name(name_norm):
            return None

        for indexed in candidates:
            if indexed.name_norm and indexed.name_norm == name_norm:
                return Match(
                    driver_id=indexed.driver.id,
                    confidence=EXACT_MATCH_CONFIDENCE,
                    method=MatchMethod.EXACT_MATCH,
                    driver_name=indexed.driver.full_name,
                )

        name_tokens = name_norm.split()
        best: Optional[_IndexedDriver] = None
        best_score = 0.0
        for indexed in candidates:
            if not indexed.name_norm:
                continue
            score = fuzzy_score(name_norm, name_tokens, indexed.name_norm, indexed.tokens)
            if score > best_score:
                best, best_score = indexed, score

        if best is None or best_score < self.min_score:
            return None

        return Match(
            driver_id=best.driver.id,
            confidence=min(best_score, FUZZY_CONFIDENCE_CAP),
            method=MatchMethod.FUZZY_MATCH,
            driver_name=best.driver.full_name,
        )


def find_best_match(external_name: Optional[str], employee_id: Optional[str],
                    fleet_hint: Optional[str], roster: Sequence[RosterDriver],
                    min_score: Optional[float] = None) -> Optional[Match]:
    """
    Best roster candidate for one external name.

    Tiers in priority order: employee id (1.0), exact normalized name (0.95),
    fuzzy (capped at 0.9, None below min_score).
    """
    return DriverMatcher(roster, min_score=min_score).match(external_name, employee_id, fleet_hint)
