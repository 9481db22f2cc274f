from client.base import ConsensusState
from stores.listener import ListenerValue
from stores.store import Derived


async def _current_state(client):
    return client.consensus_state


class ConsensusMonitor:
    """Consensus state of the remote client and the derived ``established`` gate"""

    def __init__(self, session):
        self.state = ListenerValue(
            session,
            ConsensusState.LOADING,
            register=lambda client, callback: client.add_consensus_changed_listener(
                lambda state: callback(ConsensusState(state))
            ),
            prime=_current_state,
            name="consensus",
        )
        self.established = Derived(self.state, lambda state: state == ConsensusState.ESTABLISHED, name="established")

    def subscribe(self, callback):
        return self.state.subscribe(callback)

    @property
    def value(self) -> ConsensusState:
        return self.state.value
