"""
Shared pytest fixtures for tournament day tests.

Running tests:
    pytest tests/                  - full suite
    pytest tests/ -m "not slow"   - fast subset
"""
import pytest
import sys
import os
import yaml

# Add src directory to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from tourney.models import Team, CHECKED_IN, COMPLETED, POOL_PLAY


@pytest.fixture
def client():
    """Create an authenticated test client."""
    from app import app
    app.config['TESTING'] = True
    client = app.test_client()
    with client.session_transaction() as sess:
        sess['user'] = 'testuser'
    yield client


@pytest.fixture
def anon_client():
    """Create an unauthenticated test client."""
    from app import app
    app.config['TESTING'] = True
    yield app.test_client()


@pytest.fixture
def temp_data_dir(tmp_path, monkeypatch):
    """Point all data files at a temporary directory with one registered user."""
    import app as app_module

    tournaments_dir = tmp_path / "tournaments"
    tournaments_dir.mkdir()

    users_file = tmp_path / "users.yaml"
    users_file.write_text(yaml.dump({'users': [
        {'username': 'testuser', 'password_hash': 'unused', 'created': '2026-01-01'}
    ]}, default_flow_style=False))

    tournaments_file = tmp_path / "tournaments.yaml"
    tournaments_file.write_text(yaml.dump({'tournaments': []}, default_flow_style=False))

    monkeypatch.setattr(app_module, 'DATA_DIR', str(tmp_path))
    monkeypatch.setattr(app_module, 'USERS_FILE', str(users_file))
    monkeypatch.setattr(app_module, 'TOURNAMENTS_FILE', str(tournaments_file))
    monkeypatch.setattr(app_module, 'TOURNAMENTS_DIR', str(tournaments_dir))

    return str(tmp_path)


@pytest.fixture
def tournament_data():
    """Valid details for creating a tournament."""
    return {
        'title': 'Summer Sand Classic',
        'location': 'Ocean Beach',
        'start_date': '2030-07-13',
        'end_date': '2030-07-14',
        'registration_deadline': '2030-07-01',
        'first_game_time': '09:00',
        'max_teams': 16,
        'skill_levels': ['open', 'a', 'bb'],
    }


@pytest.fixture
def tournament_id(client, temp_data_dir, tournament_data):
    """A tournament organized by testuser, open for registration."""
    response = client.post('/api/tournaments', json=tournament_data)
    assert response.status_code == 201
    tid = response.get_json()['tournament']['id']
    client.post(f'/api/tournaments/{tid}/status', json={'status': 'open'})
    return tid


def make_team_rows(count, skill_level='open', division=None, checked_in=True, prefix='Team'):
    """Team rows as stored in teams.yaml."""
    return [
        {
            'id': f'{prefix.lower()}{i}',
            'name': f'{prefix} {i}',
            'skill_level': skill_level,
            'division': division,
            'check_in_status': CHECKED_IN if checked_in else 'pending',
            'is_backup': False,
        }
        for i in range(1, count + 1)
    ]


def completed_pool_match(team1_id, team2_id, pool_name, winner=1, sets=None, match_id=None):
    """A finished pool match row; ``winner`` is 1 or 2."""
    if sets is None:
        sets = [[25, 18], [25, 20]] if winner == 1 else [[18, 25], [20, 25]]
    set_scores = {f'set{i}': {'team1': s[0], 'team2': s[1]} for i, s in enumerate(sets, start=1)}
    sets1 = sum(1 for s in sets if s[0] > s[1])
    sets2 = sum(1 for s in sets if s[1] > s[0])
    return {
        'id': match_id or f'{pool_name}-{team1_id}-{team2_id}',
        'team1_id': team1_id,
        'team2_id': team2_id,
        'pool_name': pool_name,
        'round_number': 1,
        'tournament_phase': POOL_PLAY,
        'status': COMPLETED,
        'set_scores': set_scores,
        'sets_won_team1': sets1,
        'sets_won_team2': sets2,
        'winner_id': team1_id if sets1 > sets2 else team2_id,
    }


@pytest.fixture
def sample_teams():
    """Eight open teams as Team objects."""
    return [Team(id=f"t{i}", name=f"Team {i}", skill_level='open', check_in_status=CHECKED_IN)
            for i in range(1, 9)]


@pytest.fixture
def mixed_skill_teams():
    """Teams across three skill levels (6 open, 5 a, 4 bb)."""
    teams = []
    for skill_level, count in (('open', 6), ('a', 5), ('bb', 4)):
        for i in range(1, count + 1):
            teams.append(Team(id=f"{skill_level}{i}", name=f"{skill_level.upper()} Team {i}",
                              skill_level=skill_level, check_in_status=CHECKED_IN))
    return teams
