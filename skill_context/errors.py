"""Exception types raised by the skill context engine."""
from typing import Optional


class SkillContextError(Exception):
    """Base class for all engine errors."""


class CatalogError(SkillContextError, ValueError):
    """Raised when the skill catalog cannot be built.

    Build errors are fatal: no partial catalog is ever published.
    """

    def __init__(self, message: str, path: Optional[object] = None):
        self.path = path
        if path is not None:
            message = f"{message} ({path})"
        super().__init__(message)


class SecurityError(CatalogError):
    """Raised when a reference path attempts to escape its skill directory."""


class BudgetExceededError(SkillContextError):
    """Raised when the best-ranked skill alone does not fit the token budget.

    Attributes:
        skill_id: Identifier of the oversized skill
        tokens: Token cost of that skill's main body
        budget: Budget the allocation was attempted with
        plan: The empty plan the allocator produced
    """

    def __init__(self, skill_id: str, tokens: int, budget: int, plan=None):
        self.skill_id = skill_id
        self.tokens = tokens
        self.budget = budget
        self.plan = plan
        super().__init__(
            f"Skill '{skill_id}' needs {tokens} tokens but the budget is {budget}"
        )


class ReferenceResolutionError(SkillContextError):
    """Raised when a declared reference file cannot be resolved."""

    def __init__(self, skill_id: str, reference: str, reason: str = "not found"):
        self.skill_id = skill_id
        self.reference = reference
        super().__init__(f"Reference '{reference}' of skill '{skill_id}': {reason}")
