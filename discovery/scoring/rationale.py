"""Human-readable reasons for a selection."""

from discovery.scoring.models import ScoredCandidate
from discovery.store.models import UserContext


# A factor must be at least this strong to be named as the reason
_TOPIC_THRESHOLD = 0.6
_TRENDING_THRESHOLD = 1.05
_REPUTATION_THRESHOLD = 1.1
_FRESHNESS_THRESHOLD = 0.8
_DIVERSITY_THRESHOLD = 0.8


def build_rationale(candidate: ScoredCandidate, user: UserContext) -> str:
    """Explain a pick from its dominant factor.

    Args:
        candidate: The selected candidate.
        user: Requesting user.

    Returns:
        One short sentence.
    """
    content = candidate.content
    components = candidate.components
    matched = [t for t in content.topics if t in user.preferred_topics]
    lead_topic = (
        max(matched, key=lambda t: (user.preferred_topics[t], t)) if matched else None
    )
    if lead_topic is None and content.topics:
        lead_topic = content.topics[0]

    # Relative strength of each nameable factor
    strengths: list[tuple[float, str]] = []
    if matched and components.topic_similarity >= _TOPIC_THRESHOLD:
        strengths.append(
            (components.topic_similarity, f"Matches your interest in {lead_topic}")
        )
    if components.trending_boost >= _TRENDING_THRESHOLD:
        where = f" in {lead_topic}" if lead_topic else ""
        strengths.append(
            (0.6 + (components.trending_boost - 1.0) * 2, f"Trending now{where}")
        )
    if components.reputation_multiplier >= _REPUTATION_THRESHOLD:
        strengths.append(
            (
                components.reputation_multiplier - 0.5,
                f"From a highly-rated source ({content.domain})",
            )
        )
    if components.freshness >= _FRESHNESS_THRESHOLD:
        strengths.append((components.freshness * 0.75, f"Fresh from {content.domain}"))
    if not matched and components.diversity >= _DIVERSITY_THRESHOLD and user.history:
        strengths.append(
            (components.diversity * 0.7, "Something new outside your usual topics")
        )

    if not strengths:
        return "Serendipitous discovery"
    return max(strengths, key=lambda s: s[0])[1]
