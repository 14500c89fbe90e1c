# Command line pool play scheduler: pools, matches, referees and start times for a teams file

import argparse
import json
import os
import sys
from datetime import datetime
import yaml
from tourney.models import Team, DEFAULT_SKILL_LEVEL
from tourney.pools import generate_pool_play_schedule, generate_pool_play_schedule_by_skill_level


def load_teams(file_path):
    """
    Teams file formats:
      {skill_level: [team names]}           (one list per skill level)
      [{'name': ..., 'skill_level': ...}]   (team rows)
    """
    with open(file_path, mode='r', encoding='utf-8') as file:
        data = yaml.safe_load(file) or []

    teams = []
    if isinstance(data, dict):
        for skill_level, team_names in data.items():
            for team_name in team_names or []:
                teams.append(Team(id=f"t{len(teams) + 1}", name=team_name, skill_level=skill_level))
    else:
        for row in data:
            if isinstance(row, str):
                row = {'name': row}
            row.setdefault('id', f"t{len(teams) + 1}")
            row.setdefault('skill_level', DEFAULT_SKILL_LEVEL)
            teams.append(Team.from_dict(row))
    return teams


def build_parser():
    parser = argparse.ArgumentParser(description='Generate a pool play schedule for a list of teams.')
    parser.add_argument('teams_file', nargs='?', help='YAML file with the teams (default: data/teams.yaml)')
    parser.add_argument('--start', default=datetime.now().replace(hour=9, minute=0, second=0, microsecond=0).isoformat(),
                        help='First game time, ISO format (default: today 09:00)')
    parser.add_argument('--duration', type=int, default=30, help='Estimated game duration in minutes')
    parser.add_argument('--warm-up', type=int, default=7, help='Warm-up minutes before each game')
    parser.add_argument('--courts', type=int, default=None,
                        help='Schedule all teams as one group on this many courts instead of pooling by skill level')
    parser.add_argument('--json', action='store_true', help='Print the matches as JSON')
    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)

    script_dir = os.path.dirname(__file__)
    base_dir = os.path.dirname(script_dir)
    teams_file = args.teams_file or os.path.join(base_dir, 'data', 'teams.yaml')

    teams = load_teams(teams_file)
    if not teams:
        print(f"No teams loaded. Check {teams_file}")
        return 1

    if args.courts:
        result = generate_pool_play_schedule(teams, args.start, args.duration, args.courts, args.warm_up)
    else:
        result = generate_pool_play_schedule_by_skill_level(teams, args.start, args.duration, args.warm_up)

    names = {team.id: team.name for team in teams}
    matches = result['matches']

    if args.json:
        print(json.dumps([match.to_dict() for match in matches], indent=2))
        return 0

    first_pool = True
    for pool in result['pools']:
        if not first_pool:
            print()
        print(f"# Pool {pool.name} ({len(pool.teams)} teams)")
        for match in (m for m in matches if m.pool_name == pool.name):
            start = datetime.fromisoformat(match.scheduled_time).strftime('%H:%M')
            referee = names.get(match.referee_team_id, '-')
            print(f"{start} Court {match.court_number}: {names[match.team1_id]} vs {names[match.team2_id]} (ref: {referee})")
        first_pool = False
    return 0


if __name__ == '__main__':
    sys.exit(main())
