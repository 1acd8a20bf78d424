"""
Member matcher.

Matches an OCR-extracted name against an assembly roster. Scoring is
order-insensitive and weighted toward the surname so that extra given
names or a swapped name order do not sink an otherwise clear match.
"""

from typing import Dict, List, Optional, Sequence, Tuple

import structlog

from ..config import get_settings
from ..models import MatchResult, RosterMember, ScoredMember
from ..utils.names import normalize_name, token_pair_score, tokenize
from ..utils.text_similarity import rank_scores

logger = structlog.get_logger()

ALIAS_SCORE = 0.98

# Share of the score carried by how well the member's own name is covered;
# the rest rewards raw tokens that found a counterpart.
MEMBER_COVERAGE_WEIGHT = 0.85


class MemberMatcher:
    """
    Scores raw names against roster members.

    Identical inputs always produce identical output: ties between equal
    scores are broken by roster position, never by dict or set ordering.
    """

    def __init__(
        self,
        threshold: Optional[float] = None,
        tie_epsilon: Optional[float] = None,
        surname_weight: Optional[float] = None,
        suggestion_count: Optional[int] = None,
    ):
        settings = get_settings()
        self.threshold = settings.match_threshold if threshold is None else threshold
        self.tie_epsilon = settings.match_tie_epsilon if tie_epsilon is None else tie_epsilon
        self.surname_weight = settings.surname_weight if surname_weight is None else surname_weight
        self.suggestion_count = (
            settings.suggestion_count if suggestion_count is None else suggestion_count
        )

        # first names take three quarters of what the surname leaves
        remaining = max(0.0, 1.0 - self.surname_weight)
        self._group_weights = (self.surname_weight, remaining * 0.75, remaining * 0.25)

    def score(self, raw_name: str, member: RosterMember) -> float:
        """Similarity of a raw name to one member in [0, 1]."""
        return self._score_tokens(tokenize(raw_name), member)

    def find_member_by_name(
        self,
        raw_name: str,
        roster: Sequence[RosterMember],
    ) -> Optional[RosterMember]:
        """
        Best roster match, or None when nothing clears the threshold or the
        runner-up is too close to call.
        """
        member, _ = self._best_match(raw_name, roster)
        return member

    def get_top_fuzzy_matches(
        self,
        raw_name: str,
        roster: Sequence[RosterMember],
        n: Optional[int] = None,
    ) -> List[ScoredMember]:
        """Top-n candidates regardless of threshold, for operator review."""
        n = self.suggestion_count if n is None else n
        scores = self._score_roster(raw_name, roster)
        return [
            ScoredMember(member=roster[i], score=s)
            for i, s in rank_scores(scores, n)
            if s > 0
        ]

    def match_member(
        self,
        raw_name: str,
        roster: Sequence[RosterMember],
        aliases: Optional[Dict[str, str]] = None,
    ) -> MatchResult:
        """
        Full match result for one raw name.

        Args:
            raw_name: Name as extracted by OCR
            roster: Assembly master list
            aliases: Normalized extracted name -> member id, learned from
                operator confirmations

        Returns:
            MatchResult with the member, or with ranked suggestions
        """
        if aliases:
            member_id = aliases.get(normalize_name(raw_name))
            if member_id:
                aliased = _find_by_id(roster, member_id)
                if aliased is not None:
                    return MatchResult(
                        raw_name=raw_name,
                        member=aliased,
                        score=ALIAS_SCORE,
                        from_alias=True,
                    )
                logger.debug("Alias target not on roster", raw_name=raw_name, member_id=member_id)

        member, best_score = self._best_match(raw_name, roster)
        if member is not None:
            return MatchResult(raw_name=raw_name, member=member, score=best_score)

        return MatchResult(
            raw_name=raw_name,
            score=best_score,
            suggestions=self.get_top_fuzzy_matches(raw_name, roster),
        )

    def _best_match(
        self,
        raw_name: str,
        roster: Sequence[RosterMember],
    ) -> Tuple[Optional[RosterMember], float]:
        scores = self._score_roster(raw_name, roster)
        ranked = rank_scores(scores, 2)
        if not ranked:
            return None, 0.0

        best_index, best_score = ranked[0]
        if best_score < self.threshold:
            return None, best_score

        if len(ranked) > 1 and best_score - ranked[1][1] < self.tie_epsilon:
            logger.debug(
                "Ambiguous name match",
                raw_name=raw_name,
                best=roster[best_index].member_key,
                runner_up=roster[ranked[1][0]].member_key,
                score=round(best_score, 3),
            )
            return None, best_score

        return roster[best_index], best_score

    def _score_roster(self, raw_name: str, roster: Sequence[RosterMember]) -> List[float]:
        raw_tokens = tokenize(raw_name)
        return [self._score_tokens(raw_tokens, member) for member in roster]

    def _score_tokens(self, raw_tokens: List[str], member: RosterMember) -> float:
        if not raw_tokens:
            return 0.0

        groups = [
            tokenize(member.surname),
            tokenize(member.first_name),
            tokenize(member.other_names),
        ]
        member_tokens = [(g, t) for g, tokens in enumerate(groups) for t in tokens]
        if not member_tokens:
            return 0.0

        pair_scores = [
            [token_pair_score(t, raw) for raw in raw_tokens]
            for _, t in member_tokens
        ]

        # Greedy one-to-one assignment, strongest pairs first
        candidates = sorted(
            (
                (-pair_scores[m][r], m, r)
                for m in range(len(member_tokens))
                for r in range(len(raw_tokens))
                if pair_scores[m][r] > 0
            )
        )
        assigned = [0.0] * len(member_tokens)
        used_member, used_raw = set(), set()
        for neg_score, m, r in candidates:
            if m in used_member or r in used_raw:
                continue
            used_member.add(m)
            used_raw.add(r)
            assigned[m] = -neg_score

        weighted, weight_total = 0.0, 0.0
        for g, weight in enumerate(self._group_weights):
            values = [assigned[i] for i, (grp, _) in enumerate(member_tokens) if grp == g]
            if not values or weight <= 0:
                continue
            weighted += weight * (sum(values) / len(values))
            weight_total += weight
        member_coverage = weighted / weight_total if weight_total else 0.0

        raw_coverage = sum(
            max(pair_scores[m][r] for m in range(len(member_tokens)))
            for r in range(len(raw_tokens))
        ) / len(raw_tokens)

        return min(
            1.0,
            MEMBER_COVERAGE_WEIGHT * member_coverage
            + (1.0 - MEMBER_COVERAGE_WEIGHT) * raw_coverage,
        )


def _find_by_id(roster: Sequence[RosterMember], member_id: str) -> Optional[RosterMember]:
    wanted = member_id.strip().lower()
    for member in roster:
        ids = (member.membership_id, member.old_membership_id or "")
        if wanted in (i.strip().lower() for i in ids if i):
            return member
    return None


def find_member_by_name(
    raw_name: str,
    roster: Sequence[RosterMember],
) -> Optional[RosterMember]:
    """Best confident roster match for a raw name, or None."""
    return MemberMatcher().find_member_by_name(raw_name, roster)


def get_top_fuzzy_matches(
    raw_name: str,
    roster: Sequence[RosterMember],
    n: int = 3,
) -> List[ScoredMember]:
    return MemberMatcher().get_top_fuzzy_matches(raw_name, roster, n)


def match_member(
    raw_name: str,
    roster: Sequence[RosterMember],
    aliases: Optional[Dict[str, str]] = None,
) -> MatchResult:
    return MemberMatcher().match_member(raw_name, roster, aliases)
