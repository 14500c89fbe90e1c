"""
Exceptions raised by the scheduling and scoring core.
"""


class TournamentError(Exception):
    """Base class for tournament rule violations reported back to the organizer."""


class BracketGenerationError(TournamentError):
    pass


class BracketSwapError(TournamentError):
    pass


class ScoringError(TournamentError):
    pass


class GeocodingError(TournamentError):
    def __init__(self, message, status_code=500):
        super().__init__(message)
        self.status_code = status_code
