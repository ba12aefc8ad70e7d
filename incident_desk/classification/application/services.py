"""
Classification Application Services
===================================

Routes a free-text report to one or more teams.

The classifier is a three-tier filter chain; the first tier with a
non-empty answer wins:

1. Explicit reference: an unambiguous trigger term ("sistemas", "mantenimiento")
2. Mentioned users: the directory team of every @-mentioned user
3. Keyword scoring: fuzzy word matches plus phrase bonuses per team
"""

from abc import ABC, abstractmethod
from typing import Dict, Iterable, List, Optional

from incident_desk.classification.domain import (
    ClassificationResult,
    ClassificationTier,
    KeywordSnapshot,
    UserDirectorySnapshot,
    contains_reference,
    normalize,
    similarity,
    adaptive_threshold,
    tokenize,
)
from incident_desk.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


# ========== Provider Interfaces (Dependency Inversion) ==========

class IKeywordProvider(ABC):
    """Interface for the current keyword snapshot."""

    @abstractmethod
    def get_snapshot(self) -> KeywordSnapshot:
        """Get the current keyword snapshot."""


class IUserDirectoryProvider(ABC):
    """Interface for the current user directory snapshot."""

    @abstractmethod
    def get_snapshot(self) -> UserDirectorySnapshot:
        """Get the current user directory snapshot."""


class StaticKeywordProvider(IKeywordProvider):
    """Fixed snapshot, for wiring without a YAML file."""

    def __init__(self, snapshot: Optional[KeywordSnapshot] = None):
        self._snapshot = snapshot or KeywordSnapshot()

    def get_snapshot(self) -> KeywordSnapshot:
        return self._snapshot


class StaticUserDirectoryProvider(IUserDirectoryProvider):
    """Fixed user directory snapshot."""

    def __init__(self, snapshot: Optional[UserDirectorySnapshot] = None):
        self._snapshot = snapshot or UserDirectorySnapshot()

    def get_snapshot(self) -> UserDirectorySnapshot:
        return self._snapshot


# ========== Classifier ==========

class TeamClassifier:
    """
    Stateless classifier. Snapshots are passed in on every call.
    """

    PHRASE_BONUS = 1.2
    INCLUSION_SCORE = 1.0

    def classify(
        self,
        text: str,
        mentioned_user_ids: Iterable[str],
        keywords: KeywordSnapshot,
        directory: UserDirectorySnapshot,
    ) -> ClassificationResult:
        normalized = normalize(text)

        teams = self._explicit_references(normalized, keywords)
        if teams:
            return ClassificationResult(teams=tuple(teams), tier=ClassificationTier.EXPLICIT)

        teams = self._mentioned_teams(mentioned_user_ids, directory)
        if teams:
            return ClassificationResult(teams=tuple(teams), tier=ClassificationTier.MENTION)

        scores = self.score_keywords(normalized, keywords)
        teams = [team for team, score in scores.items() if score >= self.INCLUSION_SCORE]
        if teams:
            return ClassificationResult(
                teams=tuple(teams),
                tier=ClassificationTier.KEYWORDS,
                scores=scores,
            )

        return ClassificationResult(teams=(), tier=ClassificationTier.NONE, scores=scores)

    def _explicit_references(self, normalized: str, keywords: KeywordSnapshot) -> List[str]:
        if not normalized:
            return []
        return [
            team for team, terms in keywords.references.items()
            if any(contains_reference(normalized, term) for term in terms)
        ]

    def _mentioned_teams(
        self,
        mentioned_user_ids: Iterable[str],
        directory: UserDirectorySnapshot,
    ) -> List[str]:
        teams: List[str] = []
        for user_id in mentioned_user_ids or ():
            team = directory.team_of(user_id)
            if team and team not in teams:
                teams.append(team)
        return teams

    def score_keywords(self, normalized: str, keywords: KeywordSnapshot) -> Dict[str, float]:
        """
        Accumulated keyword score per team.

        Each keyword adds the similarity of its best-matching token when that
        clears the adaptive threshold; each contained phrase adds PHRASE_BONUS.
        """
        tokens = tokenize(normalized)
        scores: Dict[str, float] = {}

        for team, entry in keywords.teams.items():
            score = 0.0
            for word in entry.words:
                norm_word = normalize(word)
                if not norm_word:
                    continue
                best = 0.0
                for token in tokens:
                    sim = similarity(token, norm_word)
                    if sim >= adaptive_threshold(token, norm_word) and sim > best:
                        best = sim
                score += best
            for phrase in entry.phrases:
                norm_phrase = normalize(phrase)
                if norm_phrase and norm_phrase in normalized:
                    score += self.PHRASE_BONUS
            if score > 0:
                scores[team] = round(score, 4)

        return scores


class ClassificationService:
    """
    Classifies reports against the current snapshots.

    Each call reads both snapshots once up front, so a reload that lands
    mid-classification is not observed.
    """

    def __init__(
        self,
        keyword_provider: IKeywordProvider,
        directory_provider: IUserDirectoryProvider,
        classifier: Optional[TeamClassifier] = None,
    ):
        self._keyword_provider = keyword_provider
        self._directory_provider = directory_provider
        self._classifier = classifier or TeamClassifier()

    @property
    def keywords(self) -> KeywordSnapshot:
        return self._keyword_provider.get_snapshot()

    @property
    def directory(self) -> UserDirectorySnapshot:
        return self._directory_provider.get_snapshot()

    def classify(
        self,
        text: str,
        mentioned_user_ids: Iterable[str] = (),
    ) -> ClassificationResult:
        keywords = self._keyword_provider.get_snapshot()
        directory = self._directory_provider.get_snapshot()
        result = self._classifier.classify(text, list(mentioned_user_ids), keywords, directory)

        logger.debug(
            "Report classified",
            extra={"teams": list(result.teams), "tier": result.tier}
        )
        return result
