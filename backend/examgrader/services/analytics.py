"""
Manual vs AI comparison statistics for one exam.
"""

import math
from typing import Dict, List, Optional

from examgrader.models import Question, Submission

DISTRIBUTION_RANGES = ["90-100%", "80-89%", "70-79%", "60-69%", "0-59%"]


def mean(values: List[float]) -> float:
    if not values:
        return 0.0
    return sum(values) / len(values)


def std_dev(values: List[float], avg: float) -> float:
    """Population standard deviation; 0 for fewer than two values."""
    if len(values) < 2:
        return 0.0
    return math.sqrt(mean([(v - avg) ** 2 for v in values]))


def correlation(xs: List[float], ys: List[float]) -> float:
    """Pearson correlation; 1 when either series has no variance."""
    if len(xs) != len(ys) or not xs:
        return 0.0
    mean_x, mean_y = mean(xs), mean(ys)
    numerator = sum((x - mean_x) * (y - mean_y) for x, y in zip(xs, ys))
    denominator = math.sqrt(sum((x - mean_x) ** 2 for x in xs)) * math.sqrt(sum((y - mean_y) ** 2 for y in ys))
    return 1.0 if denominator == 0 else numerator / denominator


def grade_range(score: float, total: float) -> str:
    percentage = (score / total) * 100 if total > 0 else 0
    if percentage >= 90:
        return "90-100%"
    if percentage >= 80:
        return "80-89%"
    if percentage >= 70:
        return "70-79%"
    if percentage >= 60:
        return "60-69%"
    return "0-59%"


def build_insights(corr: float, professor_mean: float, ai_mean: float) -> Dict:
    highest_mean = max(professor_mean, ai_mean)
    mean_diff_pct = abs(professor_mean - ai_mean) / highest_mean * 100 if highest_mean > 0 else 0.0

    if corr > 0.85:
        overall = ("excellent", "AI shows excellent correlation with manual grades")
    elif corr > 0.7:
        overall = ("good", "AI shows good correlation with manual grades")
    elif corr > 0.5:
        overall = ("acceptable", "AI shows acceptable correlation with manual grades")
    else:
        overall = ("poor", "AI shows low correlation with manual grades")

    if mean_diff_pct < 5:
        trend = ("balanced", "Grades are well balanced between AI and manual")
    elif professor_mean > ai_mean:
        trend = ("professor_higher", "Professors tend to grade higher than the AI")
    else:
        trend = ("ai_higher", "The AI tends to grade higher than professors")

    if mean_diff_pct < 3:
        consistency = ("very_consistent", "Very high consistency between both methods")
    elif mean_diff_pct < 8:
        consistency = ("consistent", "Good consistency between both methods")
    elif mean_diff_pct < 15:
        consistency = ("moderate", "Moderate consistency between both methods")
    else:
        consistency = ("inconsistent", "Low consistency between both methods")

    return {
        "overall": {"type": overall[0], "message": overall[1]},
        "trend": {"type": trend[0], "message": trend[1]},
        "consistency": {"type": consistency[0], "message": consistency[1]},
    }


def compute_comparison_stats(submissions: List[Submission], questions: List[Question]) -> Optional[Dict]:
    """Statistics over submissions that have both a manual and an AI total. None when there are none."""
    comparable = [
        s for s in submissions
        if s.manual_total_points is not None and s.ai_total_points is not None
    ]
    if not comparable:
        return None

    professor_points = [s.manual_total_points for s in comparable]
    ai_points = [s.ai_total_points for s in comparable]
    professor_mean = mean(professor_points)
    ai_mean = mean(ai_points)
    corr = correlation(professor_points, ai_points)

    discrepancies = [
        {
            "submission_id": s.submission_id,
            "respondent_name": s.respondent_name or s.respondent_email,
            "professor_points": s.manual_total_points,
            "ai_points": s.ai_total_points,
            "diff": abs(s.manual_total_points - s.ai_total_points),
        }
        for s in comparable
    ]
    discrepancies = sorted([d for d in discrepancies if d["diff"] > 0], key=lambda d: d["diff"], reverse=True)

    total_points = sum(q.max_points for q in questions)
    distribution = {r: {"range": r, "professor_count": 0, "ai_count": 0} for r in DISTRIBUTION_RANGES}
    for s in comparable:
        distribution[grade_range(s.manual_total_points, total_points)]["professor_count"] += 1
        distribution[grade_range(s.ai_total_points, total_points)]["ai_count"] += 1

    return {
        "professor_mean": professor_mean,
        "ai_mean": ai_mean,
        "professor_std_dev": std_dev(professor_points, professor_mean),
        "ai_std_dev": std_dev(ai_points, ai_mean),
        "correlation": corr,
        "discrepancies": discrepancies[:10],
        "grading_distribution": list(distribution.values()),
        "insights": build_insights(corr, professor_mean, ai_mean),
        "total_submissions": len(comparable),
        "scatter_data": [
            {
                "professor": s.manual_total_points,
                "ai": s.ai_total_points,
                "name": s.respondent_name or s.respondent_email or "Anonymous",
            }
            for s in comparable
        ],
    }
