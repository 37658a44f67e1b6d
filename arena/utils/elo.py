import math
from typing import Tuple
from arena.config import Config

class EloCalculator:
    """Handles rating calculations for rated (PvP) game types"""
    
    @staticmethod
    def calculate_expected_score(rating_a: int, rating_b: int) -> float:
        """
        Calculate the expected score for player A against player B
        
        Args:
            rating_a: Player A's current rating
            rating_b: Player B's current rating
            
        Returns:
            Expected score (0.0 to 1.0) for player A
        """
        return 1 / (1 + math.pow(10, (rating_b - rating_a) / 400))
    
    @staticmethod
    def calculate_elo_change(winner_rating: int, loser_rating: int, k_factor: int = None) -> int:
        """
        Calculate the rating points transferred from loser to winner
        
        Args:
            winner_rating: Winner's rating before the match
            loser_rating: Loser's rating before the match
            k_factor: K-factor, defaults to Config.K_FACTOR
            
        Returns:
            Non-negative rating delta
        """
        if k_factor is None:
            k_factor = Config.K_FACTOR
        expected_winner = EloCalculator.calculate_expected_score(winner_rating, loser_rating)
        # Half-up rounding
        return int(math.floor(k_factor * (1 - expected_winner) + 0.5))
    
    @staticmethod
    def apply_result(winner_rating: int, loser_rating: int, elo_change: int) -> Tuple[int, int]:
        """
        Apply a rating delta to both sides of a decided match
        
        The loser's rating never drops below Config.RATING_FLOOR.
        
        Returns:
            Tuple of (new_winner_rating, new_loser_rating)
        """
        new_winner = winner_rating + elo_change
        new_loser = max(Config.RATING_FLOOR, loser_rating - elo_change)
        return new_winner, new_loser
    
    @staticmethod
    def calculate_win_rate(wins: int, losses: int) -> float:
        """Win rate as a percentage of decided games"""
        total = wins + losses
        if total == 0:
            return 0.0
        return (wins / total) * 100
    
    @staticmethod
    def calculate_rank_score(wins: int, win_rate: float) -> float:
        """Rank score for solo (non-Elo) game types"""
        return wins * 10 + win_rate
