"""
Factory for short code generation strategies.
"""

from enum import Enum
from typing import Dict, Optional, Tuple

from shortlink_app.config import settings
from shortlink_app.services.short_code_strategies import (
    NanoidShortCodeStrategy,
    RandomShortCodeStrategy,
    ShortCodeStrategy,
)


class ShortCodeStrategyType(Enum):
    """Available short code generation strategies"""
    NANOID = "nanoid"
    RANDOM = "random"


class ShortCodeFactory:
    """
    Hands out one strategy instance per (type, length).

    Strategies hold no state beyond their length, so sharing is safe.
    """

    _classes = {
        ShortCodeStrategyType.NANOID: NanoidShortCodeStrategy,
        ShortCodeStrategyType.RANDOM: RandomShortCodeStrategy,
    }
    _instances: Dict[Tuple[ShortCodeStrategyType, int], ShortCodeStrategy] = {}

    @classmethod
    def create_strategy(
        cls,
        strategy_type: Optional[ShortCodeStrategyType] = None,
        length: Optional[int] = None,
    ) -> ShortCodeStrategy:
        """
        Args:
            strategy_type: Defaults to ``settings.short_code_strategy``
            length: Defaults to ``settings.short_code_length``

        Raises:
            ValueError: unknown strategy type
        """
        strategy_type = strategy_type or ShortCodeStrategyType(settings.short_code_strategy)
        length = length or settings.short_code_length

        key = (strategy_type, length)
        if key not in cls._instances:
            strategy_class = cls._classes.get(strategy_type)
            if strategy_class is None:
                raise ValueError(f"Unknown strategy type: {strategy_type}")
            cls._instances[key] = strategy_class(length=length)
        return cls._instances[key]
