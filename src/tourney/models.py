"""
Row models for teams, pools and matches.
"""

# Match statuses
SCHEDULED = 'scheduled'
IN_PROGRESS = 'in_progress'
COMPLETED = 'completed'
MATCH_STATUSES = (SCHEDULED, IN_PROGRESS, COMPLETED)

# Tournament phases a match belongs to
POOL_PLAY = 'pool_play'
PLAYOFFS = 'playoffs'

# Team check-in statuses
CHECK_IN_PENDING = 'pending'
CHECKED_IN = 'checked_in'
NO_SHOW = 'no_show'
CHECK_IN_STATUSES = (CHECK_IN_PENDING, CHECKED_IN, NO_SHOW)

TOURNAMENT_STATUSES = ('draft', 'open', 'registration_closed', 'in_progress', 'completed', 'cancelled')

DEFAULT_SKILL_LEVEL = 'open'
DEFAULT_DIVISION = 'open'

SKILL_LEVEL_LABELS = {
    'open': 'Open',
    'a': 'A',
    'bb': 'BB',
    'b': 'B',
    'c': 'C',
}

SKILL_LEVEL_DESCRIPTIONS = {
    'open': 'Elite/Competitive',
    'a': 'Advanced',
    'bb': 'Intermediate',
    'b': 'Beginner-Intermediate',
    'c': 'Recreational/Beginner',
}


def format_skill_level(skill_level):
    return SKILL_LEVEL_LABELS.get(skill_level, (skill_level or '').upper())


class Team:
    def __init__(self, id, name, skill_level=None, division=None, check_in_status=CHECK_IN_PENDING,
                 seed_number=None, is_backup=False):
        self.id = id
        self.name = name
        self.skill_level = skill_level
        self.division = division
        self.check_in_status = check_in_status
        self.seed_number = seed_number
        self.is_backup = is_backup

    @classmethod
    def from_dict(cls, row):
        return cls(
            id=row['id'],
            name=row['name'],
            skill_level=row.get('skill_level'),
            division=row.get('division'),
            check_in_status=row.get('check_in_status') or CHECK_IN_PENDING,
            seed_number=row.get('seed_number'),
            is_backup=bool(row.get('is_backup', False)),
        )

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'skill_level': self.skill_level,
            'division': self.division,
            'check_in_status': self.check_in_status,
            'seed_number': self.seed_number,
            'is_backup': self.is_backup,
        }

    def __repr__(self):
        return f"Team(id={self.id}, name={self.name}, skill_level={self.skill_level})"


class Pool:
    def __init__(self, name, teams=None):
        self.name = name
        self.teams = teams if teams else []

    def __repr__(self):
        return f"Pool(name={self.name}, teams={[team.name for team in self.teams]})"


class Match:
    def __init__(self, team1_id, team2_id, round_number, match_number, pool_name=None,
                 referee_team_id=None, court_number=1, scheduled_time=None, pool_round=None,
                 tournament_phase=POOL_PLAY, status=SCHEDULED, **extra):
        self.team1_id = team1_id
        self.team2_id = team2_id
        self.round_number = round_number
        self.match_number = match_number
        self.pool_name = pool_name
        self.referee_team_id = referee_team_id
        self.court_number = court_number
        self.scheduled_time = scheduled_time
        self.pool_round = pool_round  # Round inside the pool; a team plays at most once per pool round
        self.tournament_phase = tournament_phase
        self.status = status
        self.extra = extra  # bracket_position, division, skill_level, ...

    def team_ids(self):
        return [team_id for team_id in (self.team1_id, self.team2_id) if team_id]

    def to_dict(self):
        row = {
            'team1_id': self.team1_id,
            'team2_id': self.team2_id,
            'referee_team_id': self.referee_team_id,
            'round_number': self.round_number,
            'match_number': self.match_number,
            'pool_name': self.pool_name,
            'pool_round': self.pool_round,
            'court_number': self.court_number,
            'scheduled_time': self.scheduled_time,
            'tournament_phase': self.tournament_phase,
            'status': self.status,
        }
        row.update(self.extra)
        return row

    def __repr__(self):
        return (f"Match(pool={self.pool_name}, number={self.match_number}, "
                f"teams=({self.team1_id}, {self.team2_id}), referee={self.referee_team_id})")
