"""
Prompt text for roasts, hype, narratives, personality profiles and
activity summaries.

Builders take the dict produced by services.rich_stats.calculate_rich_stats
and render the parts each generation type cares about. Every system prompt
asks for a JSON object with content, keyPhrasesUsed and
dataPointsReferenced; the avoidance layer feeds those lists back in.
"""
from typing import Any, Dict, List, Optional

_JSON_CONTRACT = """
Respond with a JSON object only:
{
  "content": "the text shown to the athlete",
  "keyPhrasesUsed": ["distinctive phrases or jokes you used"],
  "dataPointsReferenced": ["names of the stats you leaned on"]
}"""

ROAST_SYSTEM_PROMPT = """You roast endurance athletes using their Strava data. Be sharp and sarcastic but never cruel.
Ground every joke in a specific number or pattern from the data: timing habits, streaks and breaks,
volume trends, gear hoarding, kudos hunting, odd-hour or holiday workouts.
Never touch on appearance, health, disability or any protected characteristic.
Two or three sentences. Recent roasts are listed for you; do not recycle their jokes, phrases or angles.""" + _JSON_CONTRACT

HYPE_SYSTEM_PROMPT = """You are a high-energy coach celebrating an athlete's Strava record.
Cite concrete wins: records, streaks, volume milestones, improving trends, steady consistency.
Enthusiastic without sounding like a greeting card. Two or three sentences.
Recent hype messages are listed for you; celebrate something different in different words.""" + _JSON_CONTRACT

NARRATIVE_SYSTEM_PROMPT = """You tell short, funny stories about an athlete's training.
Use the real numbers (distance, time, climbing, pace) and tie the activity to the athlete's wider pattern.
Give it a hook, a hard moment and a landing. Three or four sentences.
Vary the opening and structure from the recent narratives listed for you.""" + _JSON_CONTRACT

PERSONALITY_SYSTEM_PROMPT = """You are a sports psychologist reading personality from training data.
Consider timing habits, effort style, consistency, exploration, social behaviour and gear philosophy.
Respond with a JSON object only:
{
  "content": "the full profile as readable text",
  "profileSummary": "two or three sentences",
  "strengths": ["three or four items"],
  "growthAreas": ["two or three items"],
  "funFacts": ["three or four quirky observations from the data"],
  "spiritAnimal": "an animal",
  "spiritAnimalEmoji": "one emoji",
  "spiritAnimalReason": "why it fits",
  "compatibility": "the training partners that would suit them",
  "keyPhrasesUsed": ["..."],
  "dataPointsReferenced": ["..."]
}
Pick a different spirit animal and different fun facts than the recent profiles listed for you."""

SUMMARY_SYSTEM_PROMPT = """You analyse a single workout like a sports scientist and write a two or three sentence summary
(50 to 80 words) addressed to the athlete as "you". Never use their name. Never mention kudos or comments.
Read the workout's character from the numbers: a max speed well above average means a strong finish,
max close to average means even pacing, high heart rate means a hard effort, short and fast is speed work,
long and easy is endurance. Compare with their usual distance and duration for this sport.
Call out a new place, an unusual time of day or new gear when the context says so.
Avoid filler such as "great job", "keep it up" or "solid work".""" + _JSON_CONTRACT

SYSTEM_PROMPTS = {
    "roast": ROAST_SYSTEM_PROMPT,
    "hype": HYPE_SYSTEM_PROMPT,
    "narrative": NARRATIVE_SYSTEM_PROMPT,
    "personality": PERSONALITY_SYSTEM_PROMPT,
    "summary": SUMMARY_SYSTEM_PROMPT,
}

ROAST_STYLES = {
    "savage": "No mercy. Drill sergeant crossed with a stand-up comic.",
    "passive-aggressive": "Compliments that are really insults.",
    "disappointed-parent": "Not angry, just disappointed. Dwell on wasted potential.",
    "gym-bro": "Gym culture slang about gains and PRs, used ironically.",
    "corporate-speak": "A quarterly business review of their fitness: KPIs, synergy, underperformance.",
    "british-politeness": "Relentlessly polite, devastatingly pointed.",
    "poet": "Deliver it in verse or florid language.",
    "sports-commentator": "A breathless live broadcast of their stats.",
}

HYPE_STYLES = {
    "hype-beast": "Maximum energy and excitement (no all caps).",
    "wise-mentor": "Measured, wise, a little mystical.",
    "sports-announcer": "Calling the final seconds of a championship.",
    "motivational-speaker": "Big-stage motivational speaker, all about potential.",
    "proud-friend": "A best friend bragging about them to strangers.",
}

STYLES = {"roast": ROAST_STYLES, "hype": HYPE_STYLES}


def _km(meters: Optional[float]) -> str:
    return f"{(meters or 0) / 1000:.1f} km"


def _hours(seconds: Optional[float]) -> str:
    return f"{(seconds or 0) / 3600:.1f} h"


def _style_line(styles: Dict[str, str], style: Optional[str]) -> str:
    return f"STYLE: {styles[style]}\n\n" if style in styles else ""


def _top_traits(stats: Dict[str, Any], n: int = 3) -> str:
    traits = sorted((stats.get("traits") or {}).items(), key=lambda kv: kv[1], reverse=True)
    return ", ".join(f"{name} {score}" for name, score in traits[:n]) or "unknown"


def _record_line(label: str, record: Optional[Dict[str, Any]], fmt) -> str:
    if not record:
        return ""
    return f"- {label}: {fmt(record['value'])} ({record['name']})\n"


def build_roast_prompt(stats: Dict[str, Any], style: Optional[str] = None, avoidance: str = "") -> str:
    identity = stats["identity"]
    recent = stats["volume"]["recent_4_weeks"]["total"]
    timing = stats["timing"]
    consistency = stats["consistency"]
    gear = stats["gear"]
    social = stats["social"]
    quirks = stats["quirks"]
    context = stats["context"]
    return (
        f"{_style_line(ROAST_STYLES, style)}"
        "Roast this athlete.\n\n"
        f"ATHLETE: {identity.get('name') or 'Athlete'}, {identity['account_age_days']} days on Strava\n"
        f"STATE: new user {context['is_new_user']}, slumping {context['is_slumping']}, "
        f"couch mode {context['is_couch_mode']}, days since last activity {consistency['current_break']}\n"
        f"LAST 4 WEEKS: {recent['activities']} activities, {_km(recent['distance'])}, {_hours(recent['time'])}\n"
        f"HABITS: mostly {stats['activities']['primary_type']}, favourite day {timing['favorite_day']}, "
        f"favourite time {timing['favorite_time_slot']}, weekend warrior {timing['is_weekend_warrior']}\n"
        f"CONSISTENCY: streak {consistency['current_streak']} days, best {consistency['longest_streak']}, "
        f"longest break {consistency['longest_break']} days, {consistency['active_days_per_week']} active days/week\n"
        f"GEAR: {len(gear['bikes'])} bikes, {sum(1 for s in gear['shoes'] if not s['retired'])} active shoes, N+1 {gear['is_n_plus_one_guy']}\n"
        f"SOCIAL: {social['followers']} followers, {social['avg_kudos']} kudos per activity, {social['social_type']}\n"
        f"QUIRKS: pre-dawn {quirks['pre_dawn_count']}, late night {quirks['late_night_count']}, "
        f"holidays {quirks['holiday_count']}, double days {quirks['double_day_count']}, "
        f"naming {quirks['naming_style']}\n"
        f"TOP TRAITS: {_top_traits(stats)}\n"
        f"{avoidance}\n"
        "Write the roast now."
    )


def build_hype_prompt(stats: Dict[str, Any], style: Optional[str] = None, avoidance: str = "") -> str:
    identity = stats["identity"]
    ytd = stats["volume"]["ytd"]["total"]
    recent = stats["volume"]["recent_4_weeks"]["total"]
    consistency = stats["consistency"]
    records = stats["records"]
    vs_month = stats["comparisons"]["vs_last_month"]
    fun = stats["fun_comparisons"]
    return (
        f"{_style_line(HYPE_STYLES, style)}"
        "Hype up this athlete.\n\n"
        f"ATHLETE: {identity.get('name') or 'Athlete'}\n"
        f"STREAK: {consistency['current_streak']} days (best {consistency['longest_streak']}), "
        f"status {consistency['streak_status']}\n"
        f"THIS YEAR: {ytd['activities']} activities, {_km(ytd['distance'])}\n"
        f"LAST 4 WEEKS: {recent['activities']} activities, {_km(recent['distance'])}\n"
        "RECORDS:\n"
        f"{_record_line('Longest distance', records.get('longest_distance'), _km)}"
        f"{_record_line('Biggest climb', records.get('biggest_climb'), lambda v: f'{v:.0f} m')}"
        f"{_record_line('Most kudos', records.get('most_kudos'), lambda v: f'{v:.0f}')}"
        f"TREND: {vs_month['distance_change']:+.1f}% distance vs last month ({vs_month['trend']})\n"
        f"FUN FACTS: {fun['distance_equivalent']}; {fun['elevation_equivalent']}; {fun['everests']} Everests\n"
        f"TOP TRAITS: {_top_traits(stats)}\n"
        f"{avoidance}\n"
        "Write the hype now."
    )


def build_narrative_prompt(
    stats: Dict[str, Any],
    activity: Optional[Dict[str, Any]] = None,
    avoidance: str = "",
) -> str:
    name = stats["identity"].get("name") or "This athlete"
    recent = stats["volume"]["recent_4_weeks"]["total"]
    if activity is None:
        return (
            "Tell the story of this athlete's last four weeks.\n\n"
            f"ATHLETE: {name}\n"
            f"- {recent['activities']} activities, {_km(recent['distance'])}\n"
            f"- Mostly {stats['activities']['primary_type']}\n"
            f"- Trend: {stats['comparisons']['vs_last_month']['trend']}\n"
            f"{avoidance}\n"
            "Three or four sentences."
        )

    count = recent["activities"] or 1
    return (
        "Tell the story of this activity.\n\n"
        f"ATHLETE: {name}, streak {stats['consistency']['current_streak']} days\n"
        f"ACTIVITY: {activity['name']} ({activity['type']}) on {activity['date']}\n"
        f"- Distance {_km(activity['distance'])}, {round((activity['moving_time'] or 0) / 60)} min, "
        f"{activity['elevation'] or 0:.0f} m climbing, {activity.get('kudos_count') or 0} kudos\n"
        f"THEIR NORMAL: {_km(recent['distance'] / count)} and "
        f"{(recent.get('elevation') or 0) / count:.0f} m per activity over the last four weeks\n"
        f"{avoidance}\n"
        "Three or four sentences."
    )


def build_personality_prompt(stats: Dict[str, Any], avoidance: str = "") -> str:
    identity = stats["identity"]
    timing = stats["timing"]
    consistency = stats["consistency"]
    effort = stats["effort"]
    exploration = stats["exploration"]
    gear = stats["gear"]
    quirks = stats["quirks"]
    traits = sorted((stats.get("traits") or {}).items(), key=lambda kv: kv[1], reverse=True)
    trait_lines = "\n".join(f"- {name}: {score}" for name, score in traits)
    seasons = timing.get("seasons") or {}
    preferred_season = max(seasons, key=seasons.get) if seasons else "none"
    return (
        "Write a personality profile for this athlete.\n\n"
        f"ATHLETE: {identity.get('name') or 'This athlete'}, {identity['account_age_days']} days on Strava\n"
        f"ACTIVITIES: mostly {stats['activities']['primary_type']}, {stats['activities']['variety']} sports, "
        f"{stats['activities']['average_per_week']} per week\n"
        f"TIMING: {timing['favorite_day']} {timing['favorite_time_slot']}, weekend warrior "
        f"{timing['is_weekend_warrior']}, favourite season {preferred_season}\n"
        f"CONSISTENCY: streak {consistency['current_streak']}, best {consistency['longest_streak']}, "
        f"{consistency['active_days_per_week']} days/week, {consistency['streak_status']}\n"
        f"EFFORT: pacing {effort['pace_variability']}, terrain {effort['terrain_preference']}\n"
        f"SOCIAL: {stats['social']['social_type']}, {stats['social']['avg_kudos']} kudos per activity\n"
        f"EXPLORATION: score {exploration['explorer_score']}/100, "
        f"{exploration['unique_start_locations']} start areas\n"
        f"GEAR: {len(gear['bikes'])} bikes, {len(gear['shoes'])} shoes, rotation {gear['gear_rotation']}\n"
        f"QUIRKS: pre-dawn {quirks['pre_dawn_count']}, late night {quirks['late_night_count']}, "
        f"holidays {quirks['holiday_count']}, double days {quirks['double_day_count']}, "
        f"emojis {quirks['emoji_count']}\n"
        f"TRAITS (0-100):\n{trait_lines}\n"
        f"{avoidance}\n"
        "Write the profile now."
    )


def _pace_or_speed(activity, is_run: bool) -> List[str]:
    avg = activity.average_speed or 0
    top = activity.max_speed or 0
    lines = []
    if is_run and avg > 0:
        lines.append(f"- Average pace: {1000 / avg / 60:.2f} min/km")
        if top > 0:
            lines.append(f"- Best pace: {1000 / top / 60:.2f} min/km")
    elif avg > 0:
        lines.append(f"- Average speed: {avg * 3.6:.1f} km/h")
        if top > 0:
            lines.append(f"- Max speed: {top * 3.6:.1f} km/h")
    if avg > 0 and top > 0:
        lines.append(f"- Max vs average speed: {(top - avg) / avg * 100:+.0f}%")
    return lines


def build_summary_prompt(activity, context: Dict[str, Any]) -> str:
    """Prompt for one activity; context comes from ai_generate.build_summary_context."""
    is_run = "run" in (activity.type or "").lower()
    lines = [
        f"Summarise this {activity.sport_type or activity.type}: \"{activity.name}\"",
        "",
        "NUMBERS:",
        f"- Distance: {_km(activity.distance)}",
        f"- Moving time: {round((activity.moving_time or 0) / 60)} min",
        f"- Elevation gain: {activity.total_elevation_gain or 0:.0f} m",
        *_pace_or_speed(activity, is_run),
    ]
    if activity.average_heartrate:
        lines.append(f"- Heart rate: avg {activity.average_heartrate:.0f}, max {activity.max_heartrate or 0:.0f}")
    if activity.average_watts:
        lines.append(f"- Power: avg {activity.average_watts:.0f} W")
    if activity.pr_count:
        lines.append(f"- Personal records: {activity.pr_count}")

    lines += ["", "COMPARED WITH THEIR RECENT SIMILAR ACTIVITIES:"]
    if context.get("average_distance"):
        lines.append(f"- Usual distance: {_km(context['average_distance'])}")
    if context.get("average_time"):
        lines.append(f"- Usual duration: {round(context['average_time'] / 60)} min")
    lines.append(f"- Time of day: {context['time_of_day']}"
                 + (" (new for them)" if context["is_new_time_of_day"] else "")
                 + (" (their usual)" if context["is_usual_time"] else ""))
    if activity.location_city:
        if context["is_new_location"]:
            lines.append(f"- Location: {activity.location_city} (first time here)")
        elif context["is_usual_location"]:
            lines.append(f"- Location: {activity.location_city} (home turf, {context['location_visit_count']} recent visits)")
    gear = context.get("gear")
    if gear:
        note = " (first use)" if gear["is_first_use"] else " (new)" if gear["is_new"] else ""
        lines.append(f"- Gear: {gear['name']}{note}, {_km(gear['total_distance'])} total")

    lines += ["", "Write the summary now."]
    return "\n".join(lines)
