"""Advisory text collaborator."""

from clustersim.advisor.advisor import (
    SYSTEM_INSTRUCTION,
    Advisor,
    RuleBasedAdvisor,
    build_board_prompt,
    build_concept_prompt,
)

__all__ = [
    "SYSTEM_INSTRUCTION",
    "Advisor",
    "RuleBasedAdvisor",
    "build_board_prompt",
    "build_concept_prompt",
]
