import unittest

from caalm.setup_store import PendingSecretStore


class FakeClock:

    def __init__(self, now=1700000000.0):
        self.now = now

    def __call__(self):
        return self.now


class TestPendingSecretStore(unittest.TestCase):

    def setUp(self):
        self.clock = FakeClock()
        self.store = PendingSecretStore(ttl=300, sweep_interval=600, clock=self.clock)

    def test_factor_id_format(self):
        assert self.store.new_factor_id("acct-1") == "totp_acct-1_1700000000000"

    def test_put_and_get(self):
        self.store.put("f1", "SECRET", "acct-1")
        entry, expired = self.store.get("f1")
        assert not expired
        assert entry.secret == "SECRET"
        assert entry.user_id == "acct-1"
        assert entry.created_at == self.clock.now

    def test_missing(self):
        assert self.store.get("nope") == (None, False)

    def test_expired_entry_is_evicted_on_read(self):
        self.store.put("f1", "SECRET", "acct-1")
        self.clock.now += 301
        entry, expired = self.store.get("f1")
        assert expired
        assert entry.factor_id == "f1"
        assert self.store.get("f1") == (None, False)

    def test_still_valid_at_ttl(self):
        self.store.put("f1", "SECRET", "acct-1")
        self.clock.now += 300
        _, expired = self.store.get("f1")
        assert not expired

    def test_discard(self):
        self.store.put("f1", "SECRET", "acct-1")
        self.store.discard("f1")
        self.store.discard("f1")
        assert len(self.store) == 0

    def test_sweep(self):
        self.store.put("old", "A", "acct-1")
        self.clock.now += 200
        self.store.put("new", "B", "acct-2")
        self.clock.now += 200
        assert self.store.sweep() == 1
        assert len(self.store) == 1
        assert self.store.get("new")[0].secret == "B"

    def test_put_sweeps_after_interval(self):
        self.store.put("old", "A", "acct-1")
        self.clock.now += 599
        self.store.put("mid", "B", "acct-2")
        assert len(self.store) == 2
        self.clock.now += 1
        self.store.put("new", "C", "acct-3")
        assert len(self.store) == 2
        assert self.store.get("old") == (None, False)


if __name__ == "__main__":
    unittest.main()
