"""
Domain Ports

Port interfaces defining contracts between layers.
"""

from .config_proposer_port import ConfigProposalRequest, IConfigProposer
from .container_engine_port import ExecOutput, IContainerEngine, IContainerSession

__all__ = [
    # Config proposer
    "IConfigProposer",
    "ConfigProposalRequest",
    # Container engine
    "IContainerEngine",
    "IContainerSession",
    "ExecOutput",
]
