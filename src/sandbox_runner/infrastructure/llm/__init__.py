"""
LLM collaborator adapters.
"""

from .config_proposer import HttpConfigProposer, extract_json_object

__all__ = ["HttpConfigProposer", "extract_json_object"]
