from __future__ import annotations

from statemachine import State, StateMachine


class PreloadFSM(StateMachine):
    """Guards the preload handshake between the host and a freshly attached scene.

    - awaiting_handshake -> collecting (first sub-task) -> ready | failed | timed_out
    - the negotiator drives transitions; the FSM only rejects impossible ones.
    """

    awaiting_handshake = State("awaiting_handshake", value="awaiting_handshake", initial=True)
    collecting = State("collecting", value="collecting")
    ready = State("ready", value="ready", final=True)
    failed = State("failed", value="failed", final=True)
    timed_out = State("timed_out", value="timed_out", final=True)

    preload_requested = awaiting_handshake.to(collecting) | collecting.to.itself()
    loaded_received = awaiting_handshake.to(ready) | collecting.to(ready)
    errored = awaiting_handshake.to(failed) | collecting.to(failed)
    expired = awaiting_handshake.to(timed_out) | collecting.to(timed_out)

    @property
    def phase(self) -> str:
        return str(self.current_state.value)
