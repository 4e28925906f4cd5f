"""
Property-based tests for locker invariants.

Random interleavings of lock and unlock instructions from two owners must
keep, after every step:
- each position in exactly one list (no loss, no duplication)
- every position list dense (head equals the number of readable records)
- each owner's registry in one-to-one agreement with its authority's list
- registries isolated per owner

Uses Hypothesis for property-based testing with random inputs.
"""

from hypothesis import given, settings, strategies as st

from locker.core.locker_exceptions import ExceededLockLimitError, InvalidIndexError, LockNotExpiredError

from locker_helpers import NOW, LockerHarness, new_identity


OWNERS = 2
POSITIONS_PER_OWNER = 4
MAX_LOCKS = 3

step = st.tuples(
    st.sampled_from(["lock", "unlock"]),
    st.integers(min_value=0, max_value=OWNERS - 1),
    st.integers(min_value=0, max_value=POSITIONS_PER_OWNER),
    st.integers(min_value=0, max_value=20),
)


def check_invariants(harness, identities, all_ids):
    seen = []
    for identity in identities:
        owner_ids = harness.owner_ids(identity)
        locked_ids = harness.locked_ids(identity)
        lock_ids = harness.lock_ids(identity)

        assert sorted(locked_ids) == sorted(lock_ids)
        assert len(lock_ids) <= MAX_LOCKS
        harness.locker.verify_owner_state(identity.address)
        seen.extend(owner_ids)
        seen.extend(locked_ids)

    assert sorted(seen) == sorted(all_ids)


class TestLockerInvariants:
    """Property tests for custody and registry agreement."""

    @given(steps=st.lists(step, min_size=1, max_size=25))
    @settings(max_examples=25, deadline=None)
    def test_random_lock_unlock_sequences(self, steps):
        harness = LockerHarness(max_locks=MAX_LOCKS)
        identities = [new_identity() for _ in range(OWNERS)]
        ownership = {}
        for identity in identities:
            for position in harness.open_positions(identity, POSITIONS_PER_OWNER):
                ownership[position.id] = identity.address
        all_ids = list(ownership)
        clock = NOW

        for action, who, index, advance in steps:
            identity = identities[who]
            clock += advance
            before = harness.snapshot()
            try:
                if action == "lock":
                    position = harness.lock(identity, index, duration=10, now=clock)
                else:
                    position = harness.unlock(identity, index, now=clock)
            except (InvalidIndexError, ExceededLockLimitError, LockNotExpiredError):
                assert harness.snapshot() == before
            else:
                # Registries only ever hold positions their owner created
                assert ownership[position.id] == identity.address
            check_invariants(harness, identities, all_ids)

        for identity in identities:
            assert all(ownership[pid] == identity.address for pid in harness.lock_ids(identity))

    @given(count=st.integers(min_value=1, max_value=6), index=st.integers(min_value=0, max_value=5))
    @settings(max_examples=25, deadline=None)
    def test_lock_then_unlock_restores_position_set(self, count, index):
        harness = LockerHarness()
        identity = new_identity()
        harness.open_positions(identity, count)
        index = index % count
        before = sorted(harness.owner_ids(identity))

        locked = harness.lock(identity, index, duration=1)
        assert locked.id not in harness.owner_ids(identity)

        harness.unlock(identity, 0, now=NOW + 1)

        assert sorted(harness.owner_ids(identity)) == before
        assert harness.lock_ids(identity) == []
