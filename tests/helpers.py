"""Shared test doubles for the relay tests."""

HSM_ADDRESS = "0x1111111111111111111111111111111111111111"


class FakeMintClient:
    """Records every mint call instead of talking to MultiBaas."""

    def __init__(self, tx_hash="0xabc123", error=None):
        self.tx_hash = tx_hash
        self.error = error
        self.calls = []

    def call_mint_function(self, payload):
        self.calls.append(payload)
        if self.error is not None:
            raise self.error
        return self.tx_hash
