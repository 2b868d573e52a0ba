from goosetap.modules.leaderboard.service import LeaderboardService

__all__ = ["LeaderboardService"]
