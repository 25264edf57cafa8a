"""
Per-owner URL quotas.

A policy answers one question: how many live URLs may this owner hold?
None means unmetered.
"""

from abc import ABC, abstractmethod
from typing import Callable, Dict, Optional


class QuotaPolicy(ABC):

    @abstractmethod
    def limit_for(self, owner_id: str) -> Optional[int]:
        pass


class UnlimitedQuotaPolicy(QuotaPolicy):

    def limit_for(self, owner_id: str) -> Optional[int]:
        return None


class PlanQuotaPolicy(QuotaPolicy):
    """
    Limits by plan name.

    Args:
        plan_limits: plan name -> limit (None for unmetered plans)
        plan_resolver: owner id -> plan name; owners it does not know
            (returns None) fall back to ``default_plan``
        default_plan: plan for unknown owners
    """

    def __init__(
        self,
        plan_limits: Dict[str, Optional[int]],
        plan_resolver: Optional[Callable[[str], Optional[str]]] = None,
        default_plan: str = "free",
    ):
        self.plan_limits = dict(plan_limits)
        self.plan_resolver = plan_resolver or (lambda owner_id: None)
        self.default_plan = default_plan

    def limit_for(self, owner_id: str) -> Optional[int]:
        plan = self.plan_resolver(owner_id) or self.default_plan
        return self.plan_limits.get(plan)
