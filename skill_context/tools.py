"""LangChain tool for paging in deferred reference files.

When a plan defers a reference (not relevant enough yet, or over budget),
the model can request it in a follow-up turn through this tool.
"""
from typing import Callable

from langchain_core.tools import tool

from skill_context.errors import ReferenceResolutionError


def create_reference_tool(session) -> Callable:
    """Create a LangChain tool bound to a ConversationSession.

    Args:
        session: ConversationSession whose catalog serves the references

    Returns:
        LangChain @tool decorated function named ``load_skill_reference``
    """

    def load_skill_reference(skill_name: str, reference: str) -> str:
        """Load a reference file of a skill that was deferred from the context.

        Args:
            skill_name: Name of the skill.
            reference: Reference name as listed under deferred references.

        Returns:
            Reference contents, or an error message.
        """
        try:
            return session.load_deferred(skill_name, reference)
        except ReferenceResolutionError as e:
            return f"Reference not available: {e}"

    return tool(load_skill_reference)
