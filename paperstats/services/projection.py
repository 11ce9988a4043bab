"""
Grade projector: what-if simulation of topic improvements.

Pure computation over the aggregation engine's topic output. The projected
overall is mark weighted across topics, unlike the paper-weighted overall
score, because that is the number the simulator shows.
"""
from dataclasses import dataclass, field
from typing import List, Mapping, Optional, Sequence, Tuple

from paperstats.core.config import settings
from paperstats.core.errors import ValidationError
from paperstats.services.aggregation import TopicAccuracy

# (lower bound, letter), checked top down
GRADE_BOUNDARIES: Tuple[Tuple[float, str], ...] = (
    (90, "A*"),
    (80, "A"),
    (70, "B"),
    (60, "C"),
    (50, "D"),
    (40, "E"),
)


def grade_for(percentage: float) -> str:
    for lower, letter in GRADE_BOUNDARIES:
        if percentage >= lower:
            return letter
    return "U"


@dataclass
class TopicProjection:
    topic: str
    current_marks: float
    projected_marks: float
    marks_available: float


@dataclass
class Projection:
    projected_overall: float = 0.0
    per_topic: List[TopicProjection] = field(default_factory=list)


def validate_improvements(
    topics: Sequence[TopicAccuracy],
    improvements: Mapping[str, float],
    max_improvement: Optional[float] = None,
) -> None:
    limit = settings.MAX_IMPROVEMENT if max_improvement is None else max_improvement
    known = {t.topic for t in topics}
    for topic, delta in improvements.items():
        if topic not in known:
            raise ValidationError(f"Unknown topic '{topic}'", field=f"improvements.{topic}")
        if delta < 0 or delta > limit:
            raise ValidationError(f"Improvement must be between 0 and {limit}", field=f"improvements.{topic}")


def project(
    topics: Sequence[TopicAccuracy],
    improvements: Mapping[str, float],
    max_improvement: Optional[float] = None,
) -> Projection:
    """Project marks per topic after adding percentage-point ``improvements``.

    Topics missing from ``improvements`` keep their current accuracy. Each
    topic's projected accuracy is capped at 100%, so raising any single
    improvement never lowers the projected overall.
    """
    validate_improvements(topics, improvements, max_improvement)

    per_topic: List[TopicProjection] = []
    total_projected = 0.0
    total_available = 0.0
    for t in topics:
        current = t.marks_obtained / t.marks_available if t.marks_available > 0 else 0.0
        projected_accuracy = min(1.0, current + improvements.get(t.topic, 0) / 100.0)
        projected_marks = t.marks_available * projected_accuracy
        per_topic.append(TopicProjection(
            topic=t.topic, current_marks=t.marks_obtained,
            projected_marks=projected_marks, marks_available=t.marks_available,
        ))
        total_projected += projected_marks
        total_available += t.marks_available

    overall = 100.0 * total_projected / total_available if total_available > 0 else 0.0
    return Projection(projected_overall=overall, per_topic=per_topic)
