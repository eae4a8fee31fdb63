"""
Sandbox Runner

Runs untrusted code snippets and project commands inside ephemeral
containers, resolving container configurations through a static language
registry, a two-tier cache and an LLM proposer.
"""

__version__ = "0.1.0"
