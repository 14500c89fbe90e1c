"""
Flask web application for Tournament Day.

JSON API for organizers and teams: tournaments, registration and check-in,
pool play, live scoring, playoff brackets and reports.
"""
import os
import csv
import io
import re
import uuid
import yaml
from datetime import datetime, timedelta
from functools import wraps
from filelock import FileLock
from flask import Flask, request, jsonify, Response, session, g
from tourney.models import (Team, COMPLETED, PLAYOFFS, POOL_PLAY, CHECKED_IN, CHECK_IN_STATUSES,
                            TOURNAMENT_STATUSES, DEFAULT_SKILL_LEVEL, MATCH_STATUSES,
                            SKILL_LEVEL_DESCRIPTIONS, format_skill_level)
from tourney.errors import TournamentError, BracketGenerationError, BracketSwapError, ScoringError, GeocodingError
from tourney.pools import calculate_optimal_pool_configuration, generate_pool_play_schedule_by_skill_level
from tourney.standings import (check_pool_completion, calculate_all_pool_standings, get_advancement_recommendation,
                               calculate_team_stats, calculate_match_stats, determine_tournament_phase, team_name)
from tourney.elimination import generate_playoff_brackets, advance_winner, swap_bracket_teams, get_bracket_display
from tourney.scoring import ScoringRules, record_point, remove_point, record_set_scores, update_match_status
from tourney.registration import (validate_tournament, registration_slot, is_registration_open, is_check_in_open,
                                  promote_backup_team, parse_datetime, MAIN)
from tourney.testdata import generate_test_teams, simulate_checkins, simulate_pool_play_results
from tourney.geocode import geocode_location, suggest_locations, get_weather_forecast

app = Flask(__name__)


def _get_or_create_secret_key() -> bytes:
    """Get SECRET_KEY from env, or generate and persist to file."""
    env_key = os.environ.get('SECRET_KEY')
    if env_key:
        return env_key.encode() if isinstance(env_key, str) else env_key
    key_file = os.path.join(DATA_DIR, '.secret_key')
    if os.path.exists(key_file):
        with open(key_file, 'rb') as f:
            return f.read()
    key = os.urandom(24)
    os.makedirs(os.path.dirname(key_file), exist_ok=True)
    with open(key_file, 'wb') as f:
        f.write(key)
    return key


BASE_DIR = os.path.dirname(os.path.dirname(__file__))
DATA_DIR = os.environ.get('TOURNAMENT_DATA_DIR', os.path.join(BASE_DIR, 'data'))

app.secret_key = _get_or_create_secret_key()
app.config['PERMANENT_SESSION_LIFETIME'] = timedelta(days=30)

TOURNAMENTS_FILE = os.path.join(DATA_DIR, 'tournaments.yaml')
TOURNAMENTS_DIR = os.path.join(DATA_DIR, 'tournaments')
USERS_FILE = os.path.join(DATA_DIR, 'users.yaml')
_data_lock = FileLock(os.path.join(DATA_DIR, '.lock'), timeout=10)

MIN_POOL_PLAY_TEAMS = 4
MAX_TEST_TEAMS = 32
EDITABLE_SETTINGS = (
    'title', 'description', 'location', 'start_date', 'end_date', 'registration_deadline',
    'check_in_deadline', 'first_game_time', 'divisions', 'skill_levels', 'skill_levels_by_division',
    'estimated_game_duration', 'warm_up_duration', 'number_of_courts', 'max_teams',
    'max_teams_per_skill_level', 'players_per_team', 'allow_backup_teams', 'sets_per_game',
    'points_per_set', 'must_win_by', 'deciding_set_points', 'entry_fee', 'latitude', 'longitude',
)
TEAM_FIELDS = ('name', 'skill_level', 'division', 'contact_email', 'contact_phone', 'captain_name',
               'players_count', 'notes')


def _new_id() -> str:
    return uuid.uuid4().hex[:12]


def _load_yaml(path: str, default):
    """Load a YAML document, falling back to ``default`` when missing or unreadable."""
    if not os.path.exists(path):
        return default
    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f)
        return data if data is not None else default
    except Exception as e:
        app.logger.warning(f'Failed to parse {path}: {e}')
        return default


def _save_yaml(path: str, data):
    os.makedirs(os.path.dirname(path), exist_ok=True)
    with open(path, 'w', encoding='utf-8') as f:
        yaml.dump(data, f, default_flow_style=False, allow_unicode=True, sort_keys=False)


def ensure_data_structure():
    """Ensure the data directories exist."""
    os.makedirs(TOURNAMENTS_DIR, exist_ok=True)


ensure_data_structure()


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------

def load_users() -> list:
    """Load user registry from YAML."""
    data = _load_yaml(USERS_FILE, {})
    return data.get('users', []) if isinstance(data, dict) else []


def save_users(users: list):
    """Save user registry to YAML."""
    _save_yaml(USERS_FILE, {'users': users})


def create_user(username: str, password: str, display_name: str = None) -> tuple:
    """Create a new user. Returns (success, message)."""
    from werkzeug.security import generate_password_hash
    username = username.lower().strip()
    if not re.match(r'^[a-z0-9][a-z0-9-]*$', username) or len(username) < 2:
        return False, 'Username must be at least 2 characters: letters, numbers, hyphens.'
    if len(password) < 4:
        return False, 'Password must be at least 4 characters.'
    with _data_lock:
        users = load_users()
        if any(u['username'] == username for u in users):
            return False, 'Username already taken.'
        users.append({
            'username': username,
            'display_name': display_name or username,
            'password_hash': generate_password_hash(password),
            'created': datetime.now().isoformat()
        })
        save_users(users)
    return True, 'Account created successfully.'


def authenticate_user(username: str, password: str) -> bool:
    """Check username/password. Returns True if valid."""
    from werkzeug.security import check_password_hash
    users = load_users()
    for u in users:
        if u['username'] == username.lower().strip():
            return check_password_hash(u['password_hash'], password)
    return False


def login_required(f):
    """Reject the request with 401 if the user is not authenticated."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if 'user' not in session:
            return jsonify({'success': False, 'error': 'Authentication required'}), 401
        return f(*args, **kwargs)
    return decorated_function


def organizer_required(f):
    """Only the tournament's organizer may use the endpoint. Sets g.tournament."""
    @wraps(f)
    def decorated_function(tournament_id, *args, **kwargs):
        if 'user' not in session:
            return jsonify({'success': False, 'error': 'Authentication required'}), 401
        tournament = load_tournament(tournament_id)
        if tournament is None:
            return jsonify({'success': False, 'error': 'Tournament not found'}), 404
        if tournament.get('organizer') != session['user']:
            return jsonify({'success': False, 'error': 'Only the organizer can do this'}), 403
        g.tournament = tournament
        return f(tournament_id, *args, **kwargs)
    return decorated_function


def _is_organizer(tournament: dict) -> bool:
    return bool(tournament) and session.get('user') == tournament.get('organizer')


# ---------------------------------------------------------------------------
# Tournament storage
# ---------------------------------------------------------------------------

def _slugify(name: str) -> str:
    """Convert tournament name to filesystem-safe slug."""
    slug = name.lower().strip()
    slug = re.sub(r'[^a-z0-9\s-]', '', slug)
    slug = re.sub(r'[\s-]+', '-', slug)
    slug = slug.strip('-')
    return slug or 'tournament'


def _tournament_dir(tournament_id: str) -> str:
    return os.path.join(TOURNAMENTS_DIR, tournament_id)


def _file_path(tournament_id: str, filename: str) -> str:
    """Return full path to a data file of a tournament."""
    return os.path.join(_tournament_dir(tournament_id), filename)


def load_tournaments() -> list:
    """Load the tournaments registry."""
    data = _load_yaml(TOURNAMENTS_FILE, {})
    return data.get('tournaments', []) if isinstance(data, dict) else []


def save_tournaments(tournaments: list):
    _save_yaml(TOURNAMENTS_FILE, {'tournaments': tournaments})


def get_default_settings():
    """Return default tournament settings."""
    return {
        'title': '',
        'description': '',
        'location': '',
        'start_date': None,
        'end_date': None,
        'registration_deadline': None,
        'check_in_deadline': None,
        'first_game_time': '09:00',
        'tournament_format': 'pool_play',
        'divisions': [],
        'skill_levels': [DEFAULT_SKILL_LEVEL],
        'skill_levels_by_division': {},
        'estimated_game_duration': 30,
        'warm_up_duration': 7,
        'number_of_courts': None,
        'max_teams': 16,
        'max_teams_per_skill_level': {},
        'players_per_team': 6,
        'allow_backup_teams': True,
        'entry_fee': 0,
        'sets_per_game': 3,
        'points_per_set': 25,
        'must_win_by': 2,
        'deciding_set_points': 15,
        'status': 'draft',
        'brackets_generated': False,
        'playoffs_generated': False,
    }


def load_tournament(tournament_id: str):
    """Load a tournament merged over the default settings. None if it does not exist."""
    if not re.match(r'^[a-z0-9-]+$', tournament_id or ''):
        return None
    path = _file_path(tournament_id, 'tournament.yaml')
    if not os.path.exists(path):
        return None
    data = _load_yaml(path, {})
    return {**get_default_settings(), **data}


def save_tournament(tournament: dict):
    tournament['updated_at'] = datetime.now().isoformat()
    _save_yaml(_file_path(tournament['id'], 'tournament.yaml'), tournament)
    registry = load_tournaments()
    for entry in registry:
        if entry['id'] == tournament['id']:
            entry['title'] = tournament.get('title')
            entry['status'] = tournament.get('status')
            entry['start_date'] = tournament.get('start_date')
            break
    save_tournaments(registry)


def load_teams(tournament_id: str) -> list:
    return _load_yaml(_file_path(tournament_id, 'teams.yaml'), [])


def save_teams(tournament_id: str, teams: list):
    _save_yaml(_file_path(tournament_id, 'teams.yaml'), teams)


def load_players(tournament_id: str) -> list:
    return _load_yaml(_file_path(tournament_id, 'players.yaml'), [])


def save_players(tournament_id: str, players: list):
    _save_yaml(_file_path(tournament_id, 'players.yaml'), players)


def load_matches(tournament_id: str) -> list:
    return _load_yaml(_file_path(tournament_id, 'matches.yaml'), [])


def save_matches(tournament_id: str, matches: list):
    _save_yaml(_file_path(tournament_id, 'matches.yaml'), matches)


def load_team_stats(tournament_id: str) -> list:
    return _load_yaml(_file_path(tournament_id, 'team_stats.yaml'), [])


def save_team_stats(tournament_id: str, stats: list):
    _save_yaml(_file_path(tournament_id, 'team_stats.yaml'), stats)


def load_logs(tournament_id: str) -> list:
    return _load_yaml(_file_path(tournament_id, 'logs.yaml'), [])


def log_tournament_action(tournament_id: str, action: str, details: dict = None):
    """Append an entry to the tournament's audit log."""
    logs = load_logs(tournament_id)
    logs.append({
        'timestamp': datetime.now().isoformat(),
        'user': session.get('user'),
        'action': action,
        'details': details or {}
    })
    _save_yaml(_file_path(tournament_id, 'logs.yaml'), logs)
    app.logger.info(f'[{tournament_id}] {action}: {details or {}}')


def refresh_team_stats(tournament_id: str, matches: list = None, teams: list = None) -> list:
    """Recompute the team_stats rows from the match rows."""
    matches = load_matches(tournament_id) if matches is None else matches
    teams = load_teams(tournament_id) if teams is None else teams
    stats = calculate_team_stats(matches, [t for t in teams if not t.get('is_backup')])
    save_team_stats(tournament_id, stats)
    return stats


def _team_lookup(teams: list) -> dict:
    return {team['id']: team for team in teams}


def _find_by_id(rows: list, row_id: str):
    return next((row for row in rows if row.get('id') == row_id), None)


def _with_team_names(match: dict, lookup: dict) -> dict:
    row = dict(match)
    for key in ('team1', 'team2', 'referee_team', 'winner'):
        team_id = match.get(f'{key}_id')
        row[f'{key}_name'] = team_name(lookup, team_id) if team_id else None
    return row


def _int_setting(tournament: dict, key: str) -> int:
    """A numeric setting, falling back to the default when it is empty."""
    value = tournament.get(key)
    if value is None or value == '':
        value = get_default_settings()[key]
    return int(value)


def _first_game_datetime(tournament: dict) -> datetime:
    """Start date combined with the first game time."""
    start = parse_datetime(tournament.get('start_date'))
    if start is None:
        raise ValueError('Tournament start date is not set')
    hours, minutes = (int(part) for part in str(tournament.get('first_game_time') or '09:00').split(':')[:2])
    return start.replace(hour=hours, minute=minutes, second=0, microsecond=0)


# ---------------------------------------------------------------------------
# Auth routes
# ---------------------------------------------------------------------------

@app.route('/register', methods=['POST'])
def register_page():
    """Create an account and log it in."""
    data = request.get_json(silent=True) or request.form
    username = data.get('username', '')
    password = data.get('password', '')
    confirm = data.get('confirm_password', password)
    if password != confirm:
        return jsonify({'success': False, 'error': 'Passwords do not match.'}), 400
    ok, msg = create_user(username, password, data.get('display_name'))
    if not ok:
        return jsonify({'success': False, 'error': msg}), 400
    session['user'] = username.lower().strip()
    session.permanent = True
    return jsonify({'success': True, 'message': msg, 'user': session['user']}), 201


@app.route('/login', methods=['POST'])
def login_page():
    """Authenticate and start a session."""
    data = request.get_json(silent=True) or request.form
    username = data.get('username', '')
    password = data.get('password', '')
    if not authenticate_user(username, password):
        return jsonify({'success': False, 'error': 'Invalid username or password.'}), 401
    session['user'] = username.lower().strip()
    session.permanent = True
    return jsonify({'success': True, 'user': session['user']})


@app.route('/logout', methods=['POST'])
def logout():
    """Clear session."""
    session.clear()
    return jsonify({'success': True})


# ---------------------------------------------------------------------------
# Tournaments
# ---------------------------------------------------------------------------

@app.route('/api/tournaments', methods=['GET'])
def api_list_tournaments():
    """List tournaments, optionally only the current user's (?mine=1)."""
    tournaments = load_tournaments()
    if request.args.get('mine'):
        tournaments = [t for t in tournaments if t.get('organizer') == session.get('user')]
    return jsonify({'tournaments': tournaments})


@app.route('/api/tournaments', methods=['POST'])
@login_required
def api_create_tournament():
    """Create a tournament from the submitted details."""
    data = request.get_json(silent=True) or {}
    settings = get_default_settings()
    for key in EDITABLE_SETTINGS:
        if key in data:
            settings[key] = data[key]

    errors = validate_tournament(settings)
    if errors:
        return jsonify({'success': False, 'error': errors[0], 'errors': errors}), 400

    with _data_lock:
        registry = load_tournaments()
        existing = {t['id'] for t in registry}
        base = _slugify(settings['title'])
        tournament_id = base
        suffix = 2
        while tournament_id in existing or os.path.exists(_tournament_dir(tournament_id)):
            tournament_id = f'{base}-{suffix}'
            suffix += 1

        settings['id'] = tournament_id
        settings['organizer'] = session['user']
        settings['created_at'] = datetime.now().isoformat()
        os.makedirs(_tournament_dir(tournament_id), exist_ok=True)
        registry.append({
            'id': tournament_id,
            'title': settings['title'],
            'organizer': settings['organizer'],
            'status': settings['status'],
            'start_date': settings['start_date'],
            'created': settings['created_at'],
        })
        save_tournaments(registry)
        save_tournament(settings)
        log_tournament_action(tournament_id, 'tournament_created', {'title': settings['title']})

    return jsonify({'success': True, 'tournament': settings}), 201


@app.route('/api/tournaments/<tournament_id>', methods=['GET'])
def api_get_tournament(tournament_id):
    """Tournament details with team counts and current phase."""
    tournament = load_tournament(tournament_id)
    if tournament is None:
        return jsonify({'success': False, 'error': 'Tournament not found'}), 404
    teams = load_teams(tournament_id)
    matches = load_matches(tournament_id)
    return jsonify({
        'tournament': tournament,
        'phase': determine_tournament_phase(matches),
        'team_count': sum(1 for t in teams if not t.get('is_backup')),
        'backup_count': sum(1 for t in teams if t.get('is_backup')),
        'checked_in_count': sum(1 for t in teams if t.get('check_in_status') == CHECKED_IN),
        'registration_open': is_registration_open(tournament),
        'is_organizer': _is_organizer(tournament),
        'skill_level_options': [
            {'value': level, 'label': format_skill_level(level),
             'description': SKILL_LEVEL_DESCRIPTIONS.get(level, '')}
            for level in tournament.get('skill_levels') or [DEFAULT_SKILL_LEVEL]
        ],
    })


@app.route('/api/tournaments/<tournament_id>/settings', methods=['POST'])
@organizer_required
def api_update_settings(tournament_id):
    """Update tournament details and rules."""
    data = request.get_json(silent=True) or {}
    with _data_lock:
        tournament = load_tournament(tournament_id)
        updated = dict(tournament)
        for key in EDITABLE_SETTINGS:
            if key in data:
                updated[key] = data[key]
        errors = validate_tournament(updated)
        if errors:
            return jsonify({'success': False, 'error': errors[0], 'errors': errors}), 400
        save_tournament(updated)
        changed = sorted(k for k in EDITABLE_SETTINGS if k in data)
        log_tournament_action(tournament_id, 'settings_updated', {'fields': changed})
    return jsonify({'success': True, 'tournament': updated})


@app.route('/api/tournaments/<tournament_id>/status', methods=['POST'])
@organizer_required
def api_update_tournament_status(tournament_id):
    """Move the tournament to another status (draft, open, ...)."""
    data = request.get_json(silent=True) or {}
    status = data.get('status')
    if status not in TOURNAMENT_STATUSES:
        return jsonify({'success': False, 'error': f'Invalid status: {status}'}), 400
    with _data_lock:
        tournament = load_tournament(tournament_id)
        previous = tournament.get('status')
        tournament['status'] = status
        save_tournament(tournament)
        log_tournament_action(tournament_id, 'status_changed', {'from': previous, 'to': status})
    return jsonify({'success': True, 'status': status})


@app.route('/api/tournaments/<tournament_id>', methods=['DELETE'])
@organizer_required
def api_delete_tournament(tournament_id):
    """Delete a tournament and all its data."""
    import shutil
    with _data_lock:
        registry = [t for t in load_tournaments() if t['id'] != tournament_id]
        save_tournaments(registry)
        shutil.rmtree(_tournament_dir(tournament_id), ignore_errors=True)
    app.logger.info(f'Deleted tournament {tournament_id}')
    return jsonify({'success': True})


# ---------------------------------------------------------------------------
# Teams and players
# ---------------------------------------------------------------------------

@app.route('/api/tournaments/<tournament_id>/teams', methods=['GET'])
def api_list_teams(tournament_id):
    """Registered teams and the backup list."""
    if load_tournament(tournament_id) is None:
        return jsonify({'success': False, 'error': 'Tournament not found'}), 404
    teams = load_teams(tournament_id)
    return jsonify({
        'teams': [t for t in teams if not t.get('is_backup')],
        'backup_teams': [t for t in teams if t.get('is_backup')],
    })


@app.route('/api/tournaments/<tournament_id>/teams', methods=['POST'])
def api_register_team(tournament_id):
    """Register a team; it becomes a backup team when the field is full."""
    tournament = load_tournament(tournament_id)
    if tournament is None:
        return jsonify({'success': False, 'error': 'Tournament not found'}), 404

    data = request.get_json(silent=True) or {}
    name = (data.get('name') or '').strip()
    if not name:
        return jsonify({'success': False, 'error': 'Team name is required'}), 400
    if not _is_organizer(tournament) and not is_registration_open(tournament):
        return jsonify({'success': False, 'error': 'Registration is closed'}), 409

    skill_level = data.get('skill_level') or DEFAULT_SKILL_LEVEL
    allowed_levels = tournament.get('skill_levels') or []
    if allowed_levels and skill_level not in allowed_levels:
        return jsonify({'success': False, 'error': f'Skill level {skill_level} is not offered'}), 400

    with _data_lock:
        teams = load_teams(tournament_id)
        if any(t['name'].lower() == name.lower() for t in teams):
            return jsonify({'success': False, 'error': f'Team "{name}" is already registered'}), 409

        slot = registration_slot(tournament, teams, skill_level)
        if slot is None:
            return jsonify({'success': False, 'error': 'Tournament is full'}), 409

        team = {key: data.get(key) for key in TEAM_FIELDS}
        team.update({
            'id': _new_id(),
            'name': name,
            'skill_level': skill_level,
            'check_in_status': 'pending',
            'seed_number': None,
            'is_backup': slot != MAIN,
            'registered_by': session.get('user'),
            'registered_at': datetime.now().isoformat(),
        })
        teams.append(team)
        save_teams(tournament_id, teams)
        log_tournament_action(tournament_id, 'team_registered', {'team': name, 'slot': slot})

    return jsonify({'success': True, 'team': team, 'slot': slot}), 201


@app.route('/api/tournaments/<tournament_id>/teams/<team_id>/edit', methods=['POST'])
@organizer_required
def api_edit_team(tournament_id, team_id):
    """Edit a team's details."""
    data = request.get_json(silent=True) or {}
    with _data_lock:
        teams = load_teams(tournament_id)
        team = _find_by_id(teams, team_id)
        if team is None:
            return jsonify({'success': False, 'error': 'Team not found'}), 404

        new_name = (data.get('name') or team['name']).strip()
        if any(t['name'].lower() == new_name.lower() for t in teams if t is not team):
            return jsonify({'success': False, 'error': f'Team "{new_name}" already exists.'}), 409

        for key in TEAM_FIELDS + ('seed_number',):
            if key in data:
                team[key] = data[key]
        team['name'] = new_name
        save_teams(tournament_id, teams)
        log_tournament_action(tournament_id, 'team_updated', {'team': new_name})
    return jsonify({'success': True, 'team': team})


@app.route('/api/tournaments/<tournament_id>/teams/<team_id>', methods=['DELETE'])
@organizer_required
def api_delete_team(tournament_id, team_id):
    """Remove a team that has not been scheduled."""
    with _data_lock:
        teams = load_teams(tournament_id)
        team = _find_by_id(teams, team_id)
        if team is None:
            return jsonify({'success': False, 'error': 'Team not found'}), 404
        matches = load_matches(tournament_id)
        if any(team_id in (m.get('team1_id'), m.get('team2_id'), m.get('referee_team_id')) for m in matches):
            return jsonify({'success': False, 'error': 'Team is already on the schedule'}), 409

        save_teams(tournament_id, [t for t in teams if t['id'] != team_id])
        players = load_players(tournament_id)
        save_players(tournament_id, [p for p in players if p.get('team_id') != team_id])
        log_tournament_action(tournament_id, 'team_deleted', {'team': team['name']})
    return jsonify({'success': True})


@app.route('/api/tournaments/<tournament_id>/teams/<team_id>/check-in', methods=['POST'])
def api_check_in_team(tournament_id, team_id):
    """Set a team's check-in status. Teams can check in until the deadline; organizers any time."""
    tournament = load_tournament(tournament_id)
    if tournament is None:
        return jsonify({'success': False, 'error': 'Tournament not found'}), 404

    data = request.get_json(silent=True) or {}
    status = data.get('status', CHECKED_IN)
    if status not in CHECK_IN_STATUSES:
        return jsonify({'success': False, 'error': f'Invalid check-in status: {status}'}), 400
    organizer = _is_organizer(tournament)
    if status != CHECKED_IN and not organizer:
        return jsonify({'success': False, 'error': 'Only the organizer can do this'}), 403
    if not organizer and not is_check_in_open(tournament):
        return jsonify({'success': False, 'error': 'Check-in deadline has passed'}), 409

    with _data_lock:
        teams = load_teams(tournament_id)
        team = _find_by_id(teams, team_id)
        if team is None:
            return jsonify({'success': False, 'error': 'Team not found'}), 404
        if team.get('is_backup'):
            return jsonify({'success': False, 'error': 'Backup teams must be promoted before checking in'}), 409
        team['check_in_status'] = status
        team['check_in_time'] = datetime.now().isoformat() if status == CHECKED_IN else None
        save_teams(tournament_id, teams)
        log_tournament_action(tournament_id, 'team_check_in', {'team': team['name'], 'status': status})
    return jsonify({'success': True, 'team': team})


@app.route('/api/tournaments/<tournament_id>/teams/<team_id>/promote', methods=['POST'])
@organizer_required
def api_promote_team(tournament_id, team_id):
    """Move a backup team into the main field."""
    with _data_lock:
        teams = load_teams(tournament_id)
        try:
            team = promote_backup_team(teams, team_id, g.tournament)
        except TournamentError as e:
            return jsonify({'success': False, 'error': str(e)}), 409
        save_teams(tournament_id, teams)
        log_tournament_action(tournament_id, 'team_promoted', {'team': team['name']})
    return jsonify({'success': True, 'team': team})


@app.route('/api/tournaments/<tournament_id>/teams/<team_id>/players', methods=['GET'])
def api_list_players(tournament_id, team_id):
    """Roster of a team."""
    players = [p for p in load_players(tournament_id) if p.get('team_id') == team_id]
    return jsonify({'players': players})


@app.route('/api/tournaments/<tournament_id>/teams/<team_id>/players', methods=['POST'])
def api_add_player(tournament_id, team_id):
    """Add a player to a team's roster, up to the tournament's players per team."""
    tournament = load_tournament(tournament_id)
    if tournament is None:
        return jsonify({'success': False, 'error': 'Tournament not found'}), 404

    data = request.get_json(silent=True) or {}
    name = (data.get('name') or '').strip()
    if not name:
        return jsonify({'success': False, 'error': 'Player name is required'}), 400

    with _data_lock:
        if _find_by_id(load_teams(tournament_id), team_id) is None:
            return jsonify({'success': False, 'error': 'Team not found'}), 404
        players = load_players(tournament_id)
        roster = [p for p in players if p.get('team_id') == team_id]
        limit = tournament.get('players_per_team')
        if limit and len(roster) >= int(limit):
            return jsonify({'success': False, 'error': f'Teams are limited to {limit} players'}), 409

        player = {
            'id': _new_id(),
            'team_id': team_id,
            'name': name,
            'email': data.get('email'),
            'phone': data.get('phone'),
            'position': data.get('position'),
            'is_captain': bool(data.get('is_captain', False)),
        }
        players.append(player)
        save_players(tournament_id, players)
    return jsonify({'success': True, 'player': player}), 201


@app.route('/api/tournaments/<tournament_id>/test-teams', methods=['POST'])
@organizer_required
def api_load_test_teams(tournament_id):
    """Load sample teams for trying the tournament out."""
    data = request.get_json(silent=True) or {}
    try:
        team_count = int(data.get('team_count', 12))
    except (TypeError, ValueError):
        return jsonify({'success': False, 'error': 'team_count must be a number'}), 400
    if team_count < 1 or team_count > MAX_TEST_TEAMS:
        return jsonify({'success': False, 'error': f'team_count must be between 1 and {MAX_TEST_TEAMS}'}), 400
    with _data_lock:
        teams = load_teams(tournament_id)
        new_teams = generate_test_teams(
            g.tournament, team_count, data.get('skill_levels'),
            existing_names=[t['name'] for t in teams],
            check_in_status=data.get('check_in_status', CHECKED_IN)
        )
        for team in new_teams:
            team['id'] = _new_id()
            team['seed_number'] = None
        teams.extend(new_teams)
        save_teams(tournament_id, teams)
        log_tournament_action(tournament_id, 'test_teams_loaded', {'count': len(new_teams)})

    message = None if new_teams else 'All test teams already exist'
    return jsonify({'success': True, 'count': len(new_teams), 'message': message})


@app.route('/api/tournaments/<tournament_id>/simulate-checkins', methods=['POST'])
@organizer_required
def api_simulate_checkins(tournament_id):
    """Check in a share of the pending test teams."""
    data = request.get_json(silent=True) or {}
    try:
        percentage = float(data.get('percentage', 0.8))
    except (TypeError, ValueError):
        return jsonify({'success': False, 'error': 'percentage must be a number'}), 400
    if not 0 <= percentage <= 1:
        return jsonify({'success': False, 'error': 'percentage must be between 0 and 1'}), 400
    with _data_lock:
        teams = load_teams(tournament_id)
        checked_in = simulate_checkins(teams, percentage)
        save_teams(tournament_id, teams)
    return jsonify({'success': True, 'checked_in_count': len(checked_in)})


@app.route('/api/tournaments/<tournament_id>/simulate-results', methods=['POST'])
@organizer_required
def api_generate_random_results(tournament_id):
    """Generate random results for all unfinished pool matches."""
    with _data_lock:
        matches = load_matches(tournament_id)
        if not matches:
            return jsonify({'success': False, 'error': 'No schedule found'}), 404
        updated = simulate_pool_play_results(matches, ScoringRules.from_settings(g.tournament))
        save_matches(tournament_id, matches)
        refresh_team_stats(tournament_id, matches)
        log_tournament_action(tournament_id, 'pool_results_simulated', {'matches': len(updated)})
    return jsonify({'success': True, 'matches_simulated': len(updated)})


# ---------------------------------------------------------------------------
# Pool play
# ---------------------------------------------------------------------------

def _pool_play_teams(teams: list) -> list:
    return [t for t in teams if t.get('check_in_status') == CHECKED_IN and not t.get('is_backup')]


@app.route('/api/tournaments/<tournament_id>/pool-play/preview', methods=['GET'])
def api_pool_play_preview(tournament_id):
    """Optimal pool configuration for the checked-in teams, per skill level."""
    if load_tournament(tournament_id) is None:
        return jsonify({'success': False, 'error': 'Tournament not found'}), 404
    teams = _pool_play_teams(load_teams(tournament_id))

    by_skill = {}
    for team in teams:
        by_skill.setdefault(team.get('skill_level') or DEFAULT_SKILL_LEVEL, []).append(team)

    levels = {}
    for level, level_teams in sorted(by_skill.items()):
        levels[level] = dict(calculate_optimal_pool_configuration(len(level_teams)),
                             label=format_skill_level(level),
                             description=SKILL_LEVEL_DESCRIPTIONS.get(level, ''))
    return jsonify({
        'checked_in_teams': len(teams),
        'skill_levels': levels,
        'total_pools': sum(c['num_pools'] for c in levels.values()),
        'total_matches': sum(c['total_matches'] for c in levels.values()),
        'can_generate': len(teams) >= MIN_POOL_PLAY_TEAMS,
    })


@app.route('/api/tournaments/<tournament_id>/pool-play/generate', methods=['POST'])
@organizer_required
def api_generate_pool_play(tournament_id):
    """Create pools, round-robin matches, referees and the court schedule."""
    with _data_lock:
        tournament = load_tournament(tournament_id)
        if tournament.get('brackets_generated'):
            return jsonify({'success': False, 'error': 'Pool play has already been generated'}), 409

        teams = _pool_play_teams(load_teams(tournament_id))
        if len(teams) < MIN_POOL_PLAY_TEAMS:
            return jsonify({
                'success': False,
                'error': f'At least {MIN_POOL_PLAY_TEAMS} checked-in teams are needed (found {len(teams)})'
            }), 400

        try:
            first_game = _first_game_datetime(tournament)
        except ValueError as e:
            return jsonify({'success': False, 'error': str(e)}), 400

        result = generate_pool_play_schedule_by_skill_level(
            [Team.from_dict(t) for t in teams],
            first_game,
            _int_setting(tournament, 'estimated_game_duration'),
            _int_setting(tournament, 'warm_up_duration')
        )

        team_lookup = _team_lookup(teams)
        matches = []
        for match in result['matches']:
            row = match.to_dict()
            row['id'] = _new_id()
            row['skill_level'] = team_lookup[match.team1_id].get('skill_level') or DEFAULT_SKILL_LEVEL
            row['set_scores'] = {}
            row['current_set'] = 1
            row['sets_won_team1'] = 0
            row['sets_won_team2'] = 0
            row['winner_id'] = None
            matches.append(row)

        save_matches(tournament_id, matches)
        tournament['brackets_generated'] = True
        if tournament.get('status') in ('draft', 'open', 'registration_closed'):
            tournament['status'] = 'in_progress'
        save_tournament(tournament)
        refresh_team_stats(tournament_id, matches)
        log_tournament_action(tournament_id, 'pool_play_generated', {
            'pools': len(result['pools']),
            'matches': len(matches),
            'courts': result['required_courts'],
        })

    return jsonify({
        'success': True,
        'pools': [{'name': p.name, 'teams': [t.id for t in p.teams]} for p in result['pools']],
        'matches_created': len(matches),
        'required_courts': result['required_courts'],
        'skill_level_breakdown': result['skill_level_breakdown'],
    }), 201


@app.route('/api/tournaments/<tournament_id>/pools/status', methods=['GET'])
def api_pool_status(tournament_id):
    """Pool completion, standings and how many teams should advance."""
    if load_tournament(tournament_id) is None:
        return jsonify({'success': False, 'error': 'Tournament not found'}), 404
    teams = load_teams(tournament_id)
    matches = load_matches(tournament_id)
    completion = check_pool_completion(matches, teams)
    completion['recommendation'] = get_advancement_recommendation(len(_pool_play_teams(teams)))
    completion['phase'] = determine_tournament_phase(matches)
    return jsonify(completion)


@app.route('/api/tournaments/<tournament_id>/standings', methods=['GET'])
def api_standings(tournament_id):
    """Current standings of every pool."""
    if load_tournament(tournament_id) is None:
        return jsonify({'success': False, 'error': 'Tournament not found'}), 404
    lookup = _team_lookup(load_teams(tournament_id))
    return jsonify({'standings': calculate_all_pool_standings(load_matches(tournament_id), lookup)})


# ---------------------------------------------------------------------------
# Matches and scoring
# ---------------------------------------------------------------------------

@app.route('/api/tournaments/<tournament_id>/matches', methods=['GET'])
def api_list_matches(tournament_id):
    """Matches with team names, filterable by ?phase=, ?pool=, ?team= and ?status=."""
    if load_tournament(tournament_id) is None:
        return jsonify({'success': False, 'error': 'Tournament not found'}), 404
    lookup = _team_lookup(load_teams(tournament_id))
    matches = load_matches(tournament_id)

    phase = request.args.get('phase')
    pool = request.args.get('pool')
    team_id = request.args.get('team')
    status = request.args.get('status')
    if status and status not in MATCH_STATUSES:
        return jsonify({'success': False, 'error': f'Invalid match status: {status}'}), 400
    if phase:
        matches = [m for m in matches if m.get('tournament_phase', POOL_PLAY) == phase]
    if pool:
        matches = [m for m in matches if m.get('pool_name') == pool]
    if team_id:
        matches = [m for m in matches
                   if team_id in (m.get('team1_id'), m.get('team2_id'), m.get('referee_team_id'))]
    if status:
        matches = [m for m in matches if m.get('status') == status]

    matches = sorted(matches, key=lambda m: (m.get('scheduled_time') or '', m.get('court_number') or 0))
    return jsonify({'matches': [_with_team_names(m, lookup) for m in matches]})


def _on_match_completed(tournament_id: str, match: dict, matches: list):
    """Advance a playoff winner and refresh team stats. Returns the next match, if any."""
    next_match = advance_winner(match, matches)
    refresh_team_stats(tournament_id, matches)
    log_tournament_action(tournament_id, 'match_completed', {
        'match_id': match['id'],
        'winner_id': match.get('winner_id'),
        'set_scores': match.get('set_scores'),
    })
    return next_match


@app.route('/api/tournaments/<tournament_id>/matches/<match_id>/point', methods=['POST'])
@organizer_required
def api_score_point(tournament_id, match_id):
    """Add or remove one point in the current set: {"team": "team1", "action": "add"}."""
    data = request.get_json(silent=True) or {}
    slot = data.get('team')
    action = data.get('action', 'add')
    if action not in ('add', 'remove'):
        return jsonify({'success': False, 'error': f'Invalid action: {action}'}), 400

    with _data_lock:
        matches = load_matches(tournament_id)
        match = _find_by_id(matches, match_id)
        if match is None:
            return jsonify({'success': False, 'error': 'Match not found'}), 404
        try:
            if action == 'remove':
                remove_point(match, slot)
                outcome = 'point'
            else:
                outcome = record_point(match, slot, ScoringRules.from_settings(g.tournament))
        except ScoringError as e:
            return jsonify({'success': False, 'error': str(e)}), 400

        next_match = _on_match_completed(tournament_id, match, matches) if outcome == 'match' else None
        save_matches(tournament_id, matches)

    return jsonify({
        'success': True,
        'outcome': outcome,
        'match': match,
        'next_match_id': next_match['id'] if next_match else None,
    })


@app.route('/api/tournaments/<tournament_id>/matches/<match_id>/sets', methods=['POST'])
@organizer_required
def api_submit_set_scores(tournament_id, match_id):
    """Enter complete set scores at once: {"sets": [[25, 20], [22, 25], [15, 9]]}."""
    data = request.get_json(silent=True) or {}
    sets = data.get('sets') or []

    with _data_lock:
        matches = load_matches(tournament_id)
        match = _find_by_id(matches, match_id)
        if match is None:
            return jsonify({'success': False, 'error': 'Match not found'}), 404
        if match.get('tournament_phase') == PLAYOFFS and match.get('status') == COMPLETED:
            return jsonify({'success': False, 'error': 'Completed playoff matches cannot be re-scored'}), 409
        try:
            record_set_scores(match, sets, ScoringRules.from_settings(g.tournament))
        except ScoringError as e:
            return jsonify({'success': False, 'error': str(e)}), 400

        next_match = None
        if match.get('status') == COMPLETED:
            next_match = _on_match_completed(tournament_id, match, matches)
        save_matches(tournament_id, matches)

    return jsonify({
        'success': True,
        'match': match,
        'next_match_id': next_match['id'] if next_match else None,
    })


@app.route('/api/tournaments/<tournament_id>/matches/<match_id>/status', methods=['POST'])
@organizer_required
def api_update_match_status(tournament_id, match_id):
    """Mark a match scheduled or in progress."""
    data = request.get_json(silent=True) or {}
    with _data_lock:
        matches = load_matches(tournament_id)
        match = _find_by_id(matches, match_id)
        if match is None:
            return jsonify({'success': False, 'error': 'Match not found'}), 404
        try:
            update_match_status(match, data.get('status'))
        except ScoringError as e:
            return jsonify({'success': False, 'error': str(e)}), 400
        save_matches(tournament_id, matches)
    return jsonify({'success': True, 'match': match})


# ---------------------------------------------------------------------------
# Playoff brackets
# ---------------------------------------------------------------------------

@app.route('/api/tournaments/<tournament_id>/brackets/generate', methods=['POST'])
@organizer_required
def api_generate_brackets(tournament_id):
    """Seed single elimination brackets from the pool standings."""
    data = request.get_json(silent=True) or {}
    try:
        teams_per_pool = int(data.get('teams_per_pool', 2))
    except (TypeError, ValueError):
        return jsonify({'success': False, 'error': 'teams_per_pool must be a number'}), 400

    with _data_lock:
        teams = load_teams(tournament_id)
        matches = load_matches(tournament_id)
        if any(m.get('tournament_phase') == PLAYOFFS for m in matches):
            return jsonify({'success': False, 'error': 'Playoff brackets have already been generated'}), 409

        completion = check_pool_completion(matches, teams)
        if not completion['ready_for_brackets']:
            return jsonify({
                'success': False,
                'error': 'All pool matches must be completed before generating brackets',
                'completed_pools': completion['completed_pools'],
                'total_pools': completion['total_pools'],
            }), 409

        try:
            result = generate_playoff_brackets(matches, teams, teams_per_pool)
        except BracketGenerationError as e:
            app.logger.warning(f'[{tournament_id}] Bracket generation failed: {e}')
            return jsonify({'success': False, 'error': str(e)}), 400

        for row in result['matches']:
            row['id'] = _new_id()
            row.setdefault('set_scores', {})
            row.setdefault('current_set', 1)
            row.setdefault('sets_won_team1', 0)
            row.setdefault('sets_won_team2', 0)
        matches.extend(result['matches'])
        save_matches(tournament_id, matches)

        tournament = load_tournament(tournament_id)
        tournament['playoffs_generated'] = True
        save_tournament(tournament)
        log_tournament_action(tournament_id, 'playoffs_generated', {
            'teams_per_pool': teams_per_pool,
            'categories': result['categories'],
        })

    return jsonify({
        'success': True,
        'matches_created': len(result['matches']),
        'categories': result['categories'],
    }), 201


@app.route('/api/tournaments/<tournament_id>/brackets', methods=['GET'])
def api_get_brackets(tournament_id):
    """Playoff brackets per category with rounds and champion."""
    if load_tournament(tournament_id) is None:
        return jsonify({'success': False, 'error': 'Tournament not found'}), 404
    lookup = _team_lookup(load_teams(tournament_id))
    return jsonify({'brackets': get_bracket_display(load_matches(tournament_id), lookup)})


@app.route('/api/tournaments/<tournament_id>/brackets/swap', methods=['POST'])
@organizer_required
def api_swap_bracket_teams(tournament_id):
    """Swap a bracket slot's team with another team: {"match_id", "slot", "team_id"}."""
    data = request.get_json(silent=True) or {}
    with _data_lock:
        matches = load_matches(tournament_id)
        try:
            changed = swap_bracket_teams(matches, data.get('match_id'), data.get('slot'), data.get('team_id'))
        except BracketSwapError as e:
            return jsonify({'success': False, 'error': str(e)}), 400
        save_matches(tournament_id, matches)
        log_tournament_action(tournament_id, 'bracket_teams_swapped', {
            'match_id': data.get('match_id'),
            'slot': data.get('slot'),
            'team_id': data.get('team_id'),
        })
    return jsonify({'success': True, 'matches': changed})


# ---------------------------------------------------------------------------
# Reports
# ---------------------------------------------------------------------------

@app.route('/api/tournaments/<tournament_id>/stats/teams', methods=['GET'])
def api_team_stats(tournament_id):
    """Per-team totals over every completed match."""
    if load_tournament(tournament_id) is None:
        return jsonify({'success': False, 'error': 'Tournament not found'}), 404
    stats = load_team_stats(tournament_id)
    if not stats:
        stats = calculate_team_stats(load_matches(tournament_id),
                                     [t for t in load_teams(tournament_id) if not t.get('is_backup')])
    return jsonify({'team_stats': stats})


@app.route('/api/tournaments/<tournament_id>/stats/matches', methods=['GET'])
def api_match_stats(tournament_id):
    """Totals, closest match and biggest blowout."""
    if load_tournament(tournament_id) is None:
        return jsonify({'success': False, 'error': 'Tournament not found'}), 404
    lookup = _team_lookup(load_teams(tournament_id))
    return jsonify({'match_stats': calculate_match_stats(load_matches(tournament_id), lookup)})


@app.route('/api/tournaments/<tournament_id>/export/schedule-csv')
def api_export_schedule_csv(tournament_id):
    """Export the schedule as a downloadable CSV file."""
    if load_tournament(tournament_id) is None:
        return jsonify({'success': False, 'error': 'Tournament not found'}), 404
    matches = load_matches(tournament_id)
    if not matches:
        return jsonify({'success': False, 'error': 'No schedule found'}), 404

    lookup = _team_lookup(load_teams(tournament_id))
    output = io.StringIO()
    writer = csv.writer(output)
    writer.writerow(['Time', 'Court', 'Phase', 'Pool / Bracket', 'Team 1', 'Team 2', 'Referee', 'Status', 'Score'])

    ordered = sorted(matches, key=lambda m: (m.get('tournament_phase') == PLAYOFFS,
                                             m.get('scheduled_time') or '',
                                             m.get('round_number') or 0,
                                             m.get('court_number') or 0))
    for match in ordered:
        score = ' '.join(f"{s.get('team1', 0)}-{s.get('team2', 0)}"
                         for _, s in sorted((match.get('set_scores') or {}).items(),
                                            key=lambda item: int(item[0][3:])))
        writer.writerow([
            match.get('scheduled_time') or '',
            match.get('court_number') or '',
            match.get('tournament_phase', POOL_PLAY),
            match.get('pool_name') or match.get('bracket_position') or '',
            team_name(lookup, match['team1_id']) if match.get('team1_id') else 'TBD',
            team_name(lookup, match['team2_id']) if match.get('team2_id') else ('BYE' if match.get('is_bye') else 'TBD'),
            team_name(lookup, match['referee_team_id']) if match.get('referee_team_id') else '',
            match.get('status', ''),
            score,
        ])

    csv_content = output.getvalue()
    output.close()

    return Response(
        csv_content,
        mimetype='text/csv',
        headers={'Content-Disposition': f'attachment; filename={tournament_id}-schedule.csv'},
    )


@app.route('/api/tournaments/<tournament_id>/logs', methods=['GET'])
@organizer_required
def api_tournament_logs(tournament_id):
    """Audit log, newest first."""
    return jsonify({'logs': list(reversed(load_logs(tournament_id)))})


# ---------------------------------------------------------------------------
# Location and weather
# ---------------------------------------------------------------------------

@app.route('/api/geocode', methods=['POST'])
def api_geocode():
    """Resolve a location to coordinates."""
    data = request.get_json(silent=True) or {}
    try:
        result = geocode_location(data.get('query'), os.environ.get('MAPBOX_PUBLIC_TOKEN'))
    except GeocodingError as e:
        return jsonify({'error': str(e)}), e.status_code
    return jsonify(result)


@app.route('/api/geocode/suggest', methods=['POST'])
def api_geocode_suggest():
    """Location autocomplete."""
    data = request.get_json(silent=True) or {}
    try:
        suggestions = suggest_locations(data.get('query'), os.environ.get('MAPBOX_PUBLIC_TOKEN'))
    except GeocodingError as e:
        return jsonify({'error': str(e)}), e.status_code
    return jsonify({'suggestions': suggestions})


@app.route('/api/weather', methods=['POST'])
def api_weather():
    """Forecast for a location, optionally for the tournament's start date."""
    data = request.get_json(silent=True) or {}
    try:
        forecast = get_weather_forecast(data.get('location'), os.environ.get('OPENWEATHER_API_KEY'),
                                        data.get('start_date'))
    except GeocodingError as e:
        return jsonify({'error': str(e)}), e.status_code
    except ValueError:
        return jsonify({'error': 'Invalid start date'}), 400
    return jsonify(forecast)


if __name__ == '__main__':
    app.run(debug=True, port=5000)
