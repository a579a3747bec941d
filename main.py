"""
Main application entry point
Demonstrates one assessment run over a small sample timeline
"""

from datetime import date

from src.core.assessment_engine import AssessmentEngine, FollowUpNotice
from src.core.config import config, setup_logging
from src.core.profile import Gender, UserProfile
from src.core.timeline.models import Event, EventType, Medication, TestResult


def print_notice(notice: FollowUpNotice):
    print(f"   -> notify: {notice.test_type} follow-up is {notice.days_overdue} days overdue")


def main():
    """Main application workflow"""
    setup_logging(config)

    print("="*60)
    print("Preventive Health Intelligence")
    print("Initializing engine...")
    print("="*60)

    engine = AssessmentEngine(config, notifier=print_notice)
    engine.initialize()
    print(f"\nLoaded {len(engine.guideline_store.guidelines)} guidelines")

    profile = UserProfile(
        user_id="demo-user",
        birth_date=date(1980, 3, 12),
        gender=Gender.MALE,
        risk_factors=frozenset({"family_history_diabetes"}),
    )

    # Sample records as the extraction service would deliver them
    print("\n[1/2] Ingesting sample records...")
    results = [
        TestResult("HbA1c", value, "%", day, f"lab-{i}")
        for i, (day, value) in enumerate([
            (date(2024, 1, 15), 5.5),
            (date(2024, 2, 15), 5.6),
            (date(2024, 3, 15), 5.8),
            (date(2024, 4, 15), 6.0),
            (date(2024, 5, 15), 6.3),
        ])
    ]
    results.append(TestResult("LDL", 131.0, "mg/dL", date(2019, 6, 2), "lab-ldl", "lipid_panel"))
    medications = [Medication("Vitamin D", date(2024, 2, 1), "rx-1")]
    summary = engine.timeline_store.ingest(profile.user_id, results, medications)
    engine.timeline_store.add_event(
        Event(
            user_id=profile.user_id,
            event_type=EventType.FOLLOW_UP_DUE,
            date=date(2024, 6, 15),
            source_id="visit-2024-05",
            test_type="kidney_function",
            description="Repeat kidney check",
            issued_on=date(2024, 5, 15),
        )
    )
    print(f"   ✓ {summary.inserted_points} data points, {summary.inserted_events} events")

    print("\n[2/2] Running assessment...")
    report = engine.assess(profile, as_of=date(2024, 9, 1))

    overall = report.overall_risk
    print("\n" + "="*60)
    print(f"RISK ASSESSMENT v{report.version}")
    print("="*60)
    print(f"\nAs of: {report.as_of}")
    print(f"Risk score: {overall.risk_score:.1f} ({overall.severity.value})")
    for factor, score in overall.factor_scores.items():
        print(f"   {factor:<12} {score:5.1f}")

    if report.trends:
        print("\nTrends:")
        for trend in report.trends:
            print(
                f"   • {trend.parameter}: {trend.direction.value}, "
                f"{trend.significance.value} (confidence {trend.confidence:.2f})"
            )

    print("\nRecommendations:")
    for rec in report.recommendations:
        print(f"   • [{rec.priority.value}] {rec.test_name}, {rec.frequency}")

    print("\nExplanations:")
    for explanation in report.explanations:
        if explanation.subject_kind == "recommendation":
            print(f"   • {explanation.summary} {explanation.action_guidance}")

    if report.notes:
        print(f"\nNotes ({len(report.notes)}):")
        for note in report.notes:
            print(f"   • {note.message}")

    print("\n" + "="*60)
    print("✓ Done!")


if __name__ == "__main__":
    main()
