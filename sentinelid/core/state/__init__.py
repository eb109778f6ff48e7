"""
Broker state: value models, atomic JSON IO and the durable StateStore.
"""

from sentinelid.core.state.models import EPHEMERAL_LOCAL, Alias, BrokerState, OpenToken, Session
from sentinelid.core.state.store import StateLoadResult, StateStore

__all__ = ["EPHEMERAL_LOCAL", "Alias", "BrokerState", "OpenToken", "Session", "StateLoadResult", "StateStore"]
