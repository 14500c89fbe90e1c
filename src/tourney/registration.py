"""
Tournament validation, registration capacity and check-in rules.
"""
import datetime
import logging
from typing import Dict, List, Optional

from .errors import TournamentError
from .models import DEFAULT_SKILL_LEVEL, NO_SHOW

logger = logging.getLogger(__name__)

MAIN = 'main'
BACKUP = 'backup'

# (field, minimum, maximum)
NUMERIC_SETTINGS = [
    ('max_teams', 2, 256),
    ('estimated_game_duration', 15, 180),
    ('warm_up_duration', 3, 10),
    ('number_of_courts', 1, 20),
    ('sets_per_game', 1, 5),
    ('points_per_set', 1, 99),
    ('must_win_by', 1, 10),
    ('deciding_set_points', 1, 99),
]

# Settings pool play and scoring cannot do without once they are present
REQUIRED_SETTINGS = (
    'estimated_game_duration', 'warm_up_duration', 'sets_per_game',
    'points_per_set', 'must_win_by', 'deciding_set_points',
)


def parse_datetime(value) -> Optional[datetime.datetime]:
    """Parse an ISO date or datetime; None for empty values. Raises ValueError."""
    if value is None or value == '':
        return None
    if isinstance(value, datetime.datetime):
        return value
    if isinstance(value, datetime.date):
        return datetime.datetime.combine(value, datetime.time())
    text = str(value).strip()
    if text.endswith('Z'):
        text = text[:-1] + '+00:00'
    return datetime.datetime.fromisoformat(text)


def _date_field(data, field, errors):
    try:
        return parse_datetime(data.get(field))
    except ValueError:
        errors.append(f"Invalid {field.replace('_', ' ')}")
        return None


def validate_tournament(data: Dict) -> List[str]:
    """Validate tournament details. Returns a list of error messages, empty when valid."""
    errors = []

    title = (data.get('title') or '').strip()
    if len(title) < 3:
        errors.append('Tournament title must be at least 3 characters')

    start_date = _date_field(data, 'start_date', errors)
    end_date = _date_field(data, 'end_date', errors)
    registration_deadline = _date_field(data, 'registration_deadline', errors)
    _date_field(data, 'check_in_deadline', errors)

    if start_date is None and 'Invalid start date' not in errors:
        errors.append('Start date is required')
    if start_date and end_date and end_date.date() < start_date.date():
        errors.append('End date must be on or after the start date')
    if start_date and registration_deadline and registration_deadline.date() > start_date.date():
        errors.append('Registration deadline must be on or before the start date')

    for field, minimum, maximum in NUMERIC_SETTINGS:
        value = data.get(field)
        if value is None or value == '':
            if field in data and field in REQUIRED_SETTINGS:
                errors.append(f"{field.replace('_', ' ').capitalize()} is required")
            continue
        try:
            number = int(value)
        except (TypeError, ValueError):
            errors.append(f"{field.replace('_', ' ').capitalize()} must be a number")
            continue
        if number < minimum or number > maximum:
            errors.append(f"{field.replace('_', ' ').capitalize()} must be between {minimum} and {maximum}")

    per_skill = data.get('max_teams_per_skill_level') or {}
    if not isinstance(per_skill, dict):
        errors.append('Max teams per skill level must be a mapping')
    else:
        for skill_level, cap in per_skill.items():
            if not isinstance(cap, int) or cap < 1:
                errors.append(f"Max teams for skill level {skill_level} must be a positive number")

    return errors


def main_teams(teams: List[Dict]) -> List[Dict]:
    """Registered (non-backup) teams that still hold a spot."""
    return [t for t in teams if not t.get('is_backup') and t.get('check_in_status') != NO_SHOW]


def registration_slot(tournament: Dict, teams: List[Dict], skill_level: Optional[str] = None) -> Optional[str]:
    """
    Where a new team registering for ``skill_level`` goes: 'main' while there
    is room overall and within the skill level's cap, otherwise 'backup' if the
    tournament allows backup teams, otherwise None.
    """
    skill_level = skill_level or DEFAULT_SKILL_LEVEL
    registered = main_teams(teams)

    has_room = True
    max_teams = tournament.get('max_teams')
    if max_teams and len(registered) >= int(max_teams):
        has_room = False

    skill_cap = (tournament.get('max_teams_per_skill_level') or {}).get(skill_level)
    if skill_cap:
        in_skill = [t for t in registered if (t.get('skill_level') or DEFAULT_SKILL_LEVEL) == skill_level]
        if len(in_skill) >= int(skill_cap):
            has_room = False

    if has_room:
        return MAIN
    if tournament.get('allow_backup_teams', True):
        return BACKUP
    return None


def _now_for(deadline: datetime.datetime, now: Optional[datetime.datetime] = None) -> datetime.datetime:
    """The current time in the same form as ``deadline`` (naive or in its timezone)."""
    if deadline.tzinfo is None:
        if now is None:
            return datetime.datetime.now()
        return now.astimezone().replace(tzinfo=None) if now.tzinfo else now
    if now is None:
        return datetime.datetime.now(deadline.tzinfo)
    # Naive times are taken as local time
    return now.astimezone(deadline.tzinfo)


def is_registration_open(tournament: Dict, now: Optional[datetime.datetime] = None) -> bool:
    if tournament.get('status') not in (None, 'open'):
        return False
    deadline = parse_datetime(tournament.get('registration_deadline'))
    if deadline is None:
        return True
    now = _now_for(deadline, now)
    # A date-only deadline lasts the whole day
    if deadline.time() == datetime.time():
        return now.date() <= deadline.date()
    return now <= deadline


def is_check_in_open(tournament: Dict, now: Optional[datetime.datetime] = None) -> bool:
    deadline = parse_datetime(tournament.get('check_in_deadline'))
    if deadline is None:
        return True
    return _now_for(deadline, now) <= deadline


def promote_backup_team(teams: List[Dict], team_id: str, tournament: Optional[Dict] = None) -> Dict:
    """Move a backup team into the main field, checking capacity when a tournament is given."""
    team = next((t for t in teams if t.get('id') == team_id), None)
    if team is None:
        raise TournamentError('Team not found')
    if not team.get('is_backup'):
        raise TournamentError('Team is not a backup team')

    if tournament is not None:
        others = [t for t in teams if t is not team]
        if registration_slot(tournament, others, team.get('skill_level')) != MAIN:
            raise TournamentError('No open spot to promote the team into')

    team['is_backup'] = False
    logger.info("Promoted backup team %s", team.get('name'))
    return team
