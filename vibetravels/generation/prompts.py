"""Prompt construction for itinerary generation."""

from vibetravels.db.repositories import TravelPlanRecord
from vibetravels.models.preferences import GenerationPreferences

DEFAULT_INTERESTS = "General sightseeing and local experiences"


def build_system_prompt(preferences: GenerationPreferences, language: str = "English") -> str:
    """System prompt describing the traveler's profile.

    Args:
        preferences: Preferences pinned for this generation
        language: Language the itinerary text should be written in

    Returns:
        System prompt text
    """
    interests = ", ".join(preferences.interests) or DEFAULT_INTERESTS
    pace = preferences.pace.value if preferences.pace else "moderate"
    budget = preferences.budget_level.value if preferences.budget_level else "standard"
    transport = preferences.transport.value if preferences.transport else "mixed"

    restrictions = [r for r in (preferences.dietary, preferences.accessibility) if r]
    restrictions_line = (
        f"- Restrictions/Requirements: {', '.join(restrictions)}\n" if restrictions else ""
    )

    return (
        "You are an expert travel planner assistant specialized in creating detailed, "
        "personalized travel itineraries.\n"
        "\n"
        "USER PREFERENCES:\n"
        f"- Interests: {interests}\n"
        f"- Travel Pace: {pace}\n"
        f"- Budget Level: {budget}\n"
        f"- Transport Preference: {transport}\n"
        f"{restrictions_line}"
        "\n"
        "Your task is to create a detailed day-by-day itinerary that:\n"
        "1. Matches the user's interests and preferences\n"
        "2. Respects their budget level and transport preferences\n"
        "3. Considers their travel pace (relaxed, moderate, or fast)\n"
        "4. Includes specific attractions, restaurants, and activities with estimated times\n"
        "5. Provides practical tips and recommendations\n"
        "6. Is realistic and achievable within the given timeframe\n"
        "\n"
        f"Always respond in {language} with practical, actionable recommendations."
    )


def build_user_prompt(plan: TravelPlanRecord, preferences: GenerationPreferences) -> str:
    """User prompt with the trip details."""
    details = [
        f"- Destination: {plan.destination}",
        f"- Duration: {plan.number_of_days} days",
        f"- Number of people: {plan.number_of_people}",
        f"- Departure date: {plan.departure_date.isoformat()}",
    ]
    if plan.budget_per_person is not None:
        details.append(f"- Budget per person: {plan.budget_per_person:g} {plan.budget_currency}")
    if plan.user_notes and plan.user_notes.strip():
        details.append(f"- User notes: {plan.user_notes.strip()}")
    if preferences.additional_notes:
        details.append(f"- Additional requests: {preferences.additional_notes}")

    return (
        f"Please create a detailed {plan.number_of_days}-day travel itinerary "
        "for the following trip:\n"
        "\n"
        "TRIP DETAILS:\n"
        + "\n".join(details)
        + "\n"
        "\n"
        "Create a day-by-day plan with:\n"
        "- Morning, afternoon, and evening activities\n"
        "- Specific attractions, restaurants, and points of interest\n"
        "- Estimated times for each activity\n"
        "- Transport recommendations between locations\n"
        "- Practical tips for each day\n"
        "\n"
        "Focus on creating an authentic, memorable experience that matches the "
        "traveler's preferences."
    )
