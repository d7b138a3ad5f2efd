"""Email template generation for different risk tiers."""

import os
from typing import Dict, Sequence

from edusafe.models import RiskFactor, RiskProfile, RiskTier


def get_advisor_info() -> Dict[str, str]:
    """Get advisor name and email from environment or defaults."""
    return {
        'name': os.getenv('ADVISOR_NAME', 'Academic Advisor'),
        'email': os.getenv('ADVISOR_EMAIL', 'advisor@example.com')
    }


def _factor_lines(factors: Sequence[RiskFactor]) -> str:
    return "\n".join(f"- {f.detail or f.label}" for f in factors)


def generate_email_draft(profile: RiskProfile) -> Dict[str, str]:
    """Generate an email draft tailored to the student's risk tier."""
    advisor = get_advisor_info()
    if profile.tier == RiskTier.SAFE:
        return _safe_email(profile, advisor)
    if profile.tier == RiskTier.WATCHLIST:
        return _watchlist_email(profile, advisor)
    return _at_risk_email(profile, advisor)


def _safe_email(profile: RiskProfile, advisor: Dict[str, str]) -> Dict[str, str]:
    subject = f"Great Work, {profile.student_id}! Keep It Up"
    body = f"""Hi {profile.student_id},

Your attendance, test results and exam attempts all look on track this term.

Keep up the consistency. If you'd like study tips or ways to get more involved on campus, just reply to this email.

Great job!

{advisor['name']}
{advisor['email']}"""
    return {'subject': subject, 'body': body}


def _watchlist_email(profile: RiskProfile, advisor: Dict[str, str]) -> Dict[str, str]:
    subject = f"Checking In on Your Progress, {profile.student_id}"
    body = f"""Hi {profile.student_id},

I'm reaching out because a few things in your recent records caught my attention:

{_factor_lines(profile.triggered_factors)}

None of this is serious yet, but it's much easier to turn around now. Could we set up a short meeting this week to talk about what would help?

{advisor['name']}
{advisor['email']}"""
    return {'subject': subject, 'body': body}


def _at_risk_email(profile: RiskProfile, advisor: Dict[str, str]) -> Dict[str, str]:
    subject = f"Important: Let's Meet About Your Studies, {profile.student_id}"
    body = f"""Hi {profile.student_id},

I'd like to meet with you as soon as possible. Your current records show several warning signs:

{_factor_lines(profile.triggered_factors)}

You're not alone in this, and there is support available: tutoring, counselling and flexible study plans. Please reply with a time that works for you in the next few days.

{advisor['name']}
{advisor['email']}"""
    return {'subject': subject, 'body': body}
