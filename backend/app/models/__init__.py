from app.models.match import Match
from app.models.stage import Stage
from app.models.stage_group import StageGroup
from app.models.stage_slot import StageSlot
from app.models.stage_standing import StageStanding
from app.models.team import Team
from app.models.tournament import Tournament
from app.models.tournament_team import TournamentTeam

__all__ = [
    "Tournament",
    "Team",
    "TournamentTeam",
    "Stage",
    "StageGroup",
    "Match",
    "StageStanding",
    "StageSlot",
]
