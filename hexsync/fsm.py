from __future__ import annotations

from statemachine import State, StateMachine


class ConnectionFSM(StateMachine):
    """Protocol state of one client connection.

    - unjoined: connected, member of no room
    - joined: member of one or more rooms (joining more rooms stays here)
    - closed: disconnected; no further commands are accepted

    The gateway owns room counting; the FSM only guards which transitions
    are legal.
    """

    unjoined = State("Unjoined", value="unjoined", initial=True)
    joined = State("Joined", value="joined")
    closed = State("Closed", value="closed", final=True)

    join = unjoined.to(joined)
    leave_last = joined.to(unjoined)
    disconnect = unjoined.to(closed) | joined.to(closed)

    def __init__(self, connection_id: str):
        self.connection_id = connection_id
        super().__init__()

    @property
    def accepts_commands(self) -> bool:
        return not self.closed.is_active
