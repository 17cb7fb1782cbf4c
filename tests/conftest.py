import pytest

from setcode_tx.utils.signer import LocalSigner

TEST_PRIVATE_KEY = (
    "0x897368deaa9f3797c02570ef7d3fa4df179b0fc7ad8d8fc2547d04701604eb72"
)
DELEGATE_ADDRESS = "0x" + "11" * 20


class RecordingSigner:
    """Wraps a signer and records every digest it was asked to sign."""

    def __init__(self, signer):
        self.signer = signer
        self.digests = []

    @property
    def address(self):
        return self.signer.address

    def sign(self, digest):
        self.digests.append(digest)
        return self.signer.sign(digest)


class FixedSigner:
    def __init__(self, v, r, s):
        self.v = v
        self.r = r
        self.s = s

    def sign(self, digest):
        return self.v, self.r, self.s


@pytest.fixture
def private_key():
    return TEST_PRIVATE_KEY


@pytest.fixture
def signer():
    return LocalSigner(TEST_PRIVATE_KEY)


@pytest.fixture
def recording_signer(signer):
    return RecordingSigner(signer)


@pytest.fixture
def delegate_address():
    return DELEGATE_ADDRESS
