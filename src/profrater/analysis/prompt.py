"""Prompt construction for the review summary."""

from __future__ import annotations

from typing import Optional, Sequence

from profrater.core.schemas.jobs import ReviewRecord, SubjectAggregate

SYSTEM_PROMPT = (
    "You are an expert educational advisor analyzing professor reviews. "
    "Your task is to provide a comprehensive, helpful summary for students "
    "considering this professor."
)

SECTIONS: tuple[tuple[str, str], ...] = (
    ("Quick Stats", "Summarize key numbers: overall rating, difficulty, would take again %, etc."),
    ("Teaching Style", "Describe how this professor teaches, their approach, strengths and weaknesses."),
    ("Workload & Difficulty", "Explain what students say about homework, exams, time commitment."),
    ("Grading Style", "Describe grading fairness, curves, extra credit, and how grades are determined."),
    ("Best For", "What type of student would succeed with this professor?"),
    ("Watch Out For", "Important warnings or things students should be aware of."),
    ("Bottom Line", "Your final verdict: should students take this professor? Under what conditions?"),
)


def format_review(index: int, review: ReviewRecord) -> str:
    tags = ", ".join(review.tags) if review.tags else "none"
    return (
        f"Review {index}:\n"
        f"Rating: {review.rating:g}/5 | Difficulty: {review.difficulty:g}/5 | "
        f"Course: {review.course}\n"
        f"Date: {review.date}\n"
        f"Tags: {tags}\n"
        f"Comment: {review.comment}\n"
        f"Votes: +{review.thumbs_up} / -{review.thumbs_down}\n"
        "---"
    )


def build_prompt(
    reviews: Sequence[ReviewRecord],
    aggregate: SubjectAggregate,
    question: Optional[str] = None,
) -> str:
    """Build the user message sent to the model.

    The requested output is Markdown with one ``##`` heading per entry in
    :data:`SECTIONS`, plus a "Your Question" section when ``question`` is set.
    """
    name = aggregate.professor_name or "Professor (details from reviews)"
    header = (
        "PROFESSOR INFORMATION:\n"
        f"- Name: {name}\n"
        f"- Department: {aggregate.department}\n"
        f"- Overall Rating: {aggregate.overall_rating:g}/5.0 "
        f"({aggregate.total_ratings} total ratings)\n"
        f"- Would Take Again: {aggregate.would_take_again_percent:g}%\n"
        f"- Difficulty Rating: {aggregate.difficulty_rating:g}/5.0"
    )
    body = "\n\n".join(format_review(i, r) for i, r in enumerate(reviews, start=1))
    sections = "\n\n".join(f"## {title}\n({hint})" for title, hint in SECTIONS)
    if question:
        sections += (
            f'\n\n## Your Question: "{question}"\n'
            "(Provide a specific answer to the user's question based on the reviews)"
        )

    return (
        f"{header}\n\n"
        f"STUDENT REVIEWS ({len(reviews)} reviews analyzed):\n{body}\n\n"
        "Please analyze these reviews and provide a comprehensive summary in the "
        f"following format:\n\n{sections}\n\n"
        "Keep your tone friendly, honest, and student-focused. Use specific examples "
        "from reviews when possible. Be balanced but don't sugarcoat significant issues."
    )
