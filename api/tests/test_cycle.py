from dataclasses import replace
from datetime import datetime, timedelta, timezone

from studymatch.records import UserRecord, canonical_pair
from studymatch.services.cycle import CycleOrchestrator
from studymatch.services.eligibility import EligibilityFilter
from studymatch.services.locking import ChainedCycleLock, InMemoryCycleLock
from studymatch.services.matching import GreedyMatcher

NOW = datetime(2026, 3, 10, 8, 0, tzinfo=timezone.utc)


def _user(user_id: str, subjects=("Math",), last_cycle=None) -> UserRecord:
    return UserRecord(
        id=user_id,
        university="State University",
        preferred_subjects=tuple(subjects),
        onboarding_completed=True,
        last_match_cycle_at=last_cycle,
    )


class FakeStore:
    """Profile store and pairing ledger backed by in-memory dicts."""

    def __init__(self, users, fail_read=False):
        self.users = {u.id: u for u in users}
        self.order = [u.id for u in users]
        self.fail_read = fail_read
        self.pairs = set()
        self.stamped = {}

    def get_eligible_candidates(self, now, window_hours, limit=None):
        if self.fail_read:
            raise RuntimeError("connection refused")
        users = [self.users[uid] for uid in self.order]
        return users[:limit] if limit else users

    def update_last_cycle(self, user_id, timestamp):
        self.stamped[user_id] = timestamp
        self.users[user_id] = replace(self.users[user_id], last_match_cycle_at=timestamp)

    def has_pair(self, id_a, id_b):
        return canonical_pair(id_a, id_b) in self.pairs

    def create(self, pairing):
        self.pairs.add(pairing.pair_key)
        return pairing.id


class FakeConversations:
    def __init__(self, fail=False):
        self.fail = fail
        self.opened = []

    def create_for_pairing(self, pairing_id):
        if self.fail:
            raise RuntimeError("chat service down")
        self.opened.append(pairing_id)
        return f"conv-{pairing_id}"


class FakeEvents:
    def __init__(self, fail=False):
        self.fail = fail
        self.logged = []

    def log(self, event_type, pairing=None, payload=None):
        if self.fail:
            raise RuntimeError("event table missing")
        self.logged.append((event_type, pairing, payload))


def _orchestrator(store, conversations=None, lock=None, events=None, pool_limit=0):
    return CycleOrchestrator(
        EligibilityFilter(store),
        GreedyMatcher(store, store),
        conversations or FakeConversations(),
        lock=lock,
        events=events,
        pool_limit=pool_limit,
    )


def test_cycle_with_fewer_than_two_eligible_users_is_a_successful_no_op():
    for users in ([], [_user("solo")]):
        conversations = FakeConversations()
        result = _orchestrator(FakeStore(users), conversations).run(NOW)
        assert result.success is True
        assert result.matches_created == 0
        assert result.errors == []
        assert conversations.opened == []


def test_unreadable_pool_fails_the_cycle():
    result = _orchestrator(FakeStore([_user("a"), _user("b")], fail_read=True)).run(NOW)
    assert result.success is False
    assert result.matches_created == 0
    assert result.errors == ["Error fetching eligible users: connection refused"]


def test_full_cycle_creates_pairings_conversations_and_events():
    store = FakeStore([_user("a"), _user("b"), _user("c"), _user("d")])
    conversations = FakeConversations()
    events = FakeEvents()
    result = _orchestrator(store, conversations, events=events).run(NOW)

    assert result.success is True
    assert result.matches_created == 2
    assert result.eligible_count == 4
    assert result.errors == []
    assert result.started_at == NOW
    assert result.finished_at is not None
    assert len(conversations.opened) == 2
    assert store.pairs == {("a", "b"), ("c", "d")}
    assert set(store.stamped) == {"a", "b", "c", "d"}

    kinds = [e[0] for e in events.logged]
    assert kinds == ["pairing_created", "pairing_created", "cycle_completed"]
    assert events.logged[-1][2]["matches_created"] == 2


def test_conversation_failure_is_soft():
    store = FakeStore([_user("a"), _user("b")])
    result = _orchestrator(store, FakeConversations(fail=True)).run(NOW)

    assert result.success is True
    assert result.matches_created == 1
    assert len(result.errors) == 1
    assert result.errors[0].startswith("Failed to create conversation for match")
    assert store.pairs == {("a", "b")}


def test_event_log_failure_does_not_fail_the_cycle():
    result = _orchestrator(FakeStore([_user("a"), _user("b")]), events=FakeEvents(fail=True)).run(NOW)
    assert result.success is True
    assert result.matches_created == 1


def test_users_paired_in_one_cycle_wait_for_the_window_before_the_next():
    store = FakeStore([_user("a"), _user("b")])
    orchestrator = _orchestrator(store)
    assert orchestrator.run(NOW).matches_created == 1

    second = orchestrator.run(NOW + timedelta(hours=1))
    assert second.success is True
    assert second.eligible_count == 0

    third = orchestrator.run(NOW + timedelta(hours=25))
    assert third.eligible_count == 2
    assert third.matches_created == 0


def test_pool_limit_caps_the_candidate_read():
    store = FakeStore([_user("a"), _user("b"), _user("c"), _user("d")])
    result = _orchestrator(store, pool_limit=2).run(NOW)
    assert result.eligible_count == 2
    assert result.matches_created == 1


def test_concurrent_cycle_is_refused_while_lock_is_held():
    lock = InMemoryCycleLock()
    assert lock.acquire() is True
    store = FakeStore([_user("a"), _user("b")])

    result = _orchestrator(store, lock=lock).run(NOW)
    assert result.success is False
    assert result.errors == ["Matching cycle already running"]
    assert store.pairs == set()

    lock.release()
    assert _orchestrator(store, lock=lock).run(NOW).matches_created == 1
    assert lock.acquire() is True


def test_lock_is_released_after_a_failed_cycle():
    lock = InMemoryCycleLock()
    _orchestrator(FakeStore([], fail_read=True), lock=lock).run(NOW)
    assert lock.acquire() is True


class _RefusingLock:
    def __init__(self):
        self.released = 0

    def acquire(self):
        return False

    def release(self):
        self.released += 1


def test_chained_lock_releases_what_it_took_when_a_later_lock_refuses():
    first = InMemoryCycleLock()
    chained = ChainedCycleLock(first, _RefusingLock())
    assert chained.acquire() is False
    assert first.acquire() is True


def test_chained_lock_holds_all_until_release():
    first, second = InMemoryCycleLock(), InMemoryCycleLock()
    chained = ChainedCycleLock(first, second)
    assert chained.acquire() is True
    assert second.acquire() is False
    chained.release()
    assert first.acquire() is True
    assert second.acquire() is True


class _FlakyLookupStore(FakeStore):
    def has_pair(self, id_a, id_b):
        if {id_a, id_b} == {"a", "c"}:
            raise RuntimeError("ledger unreachable")
        return super().has_pair(id_a, id_b)


def test_history_lookup_failure_still_completes_the_cycle():
    store = _FlakyLookupStore([_user("a"), _user("b"), _user("c")])
    conversations = FakeConversations()
    events = FakeEvents()
    result = _orchestrator(store, conversations, events=events).run(NOW)

    assert result.success is True
    assert result.matches_created == 1
    assert store.pairs == {("a", "b")}
    assert len(conversations.opened) == 1
    assert result.errors == ["Failed to evaluate candidates for user a: ledger unreachable"]
    assert events.logged[-1][0] == "cycle_completed"


class _BrokenMatcher:
    def run_pass(self, pool, now):
        raise RuntimeError("scorer exploded")


def test_aborted_matching_pass_is_reported_not_raised():
    events = FakeEvents()
    lock = InMemoryCycleLock()
    orchestrator = CycleOrchestrator(
        EligibilityFilter(FakeStore([_user("a"), _user("b")])),
        _BrokenMatcher(),
        FakeConversations(),
        lock=lock,
        events=events,
    )
    result = orchestrator.run(NOW)

    assert result.success is True
    assert result.matches_created == 0
    assert result.errors == ["Error running matching pass: scorer exploded"]
    assert events.logged[-1][0] == "cycle_completed"
    assert lock.acquire() is True


class _ExplodingLock:
    def acquire(self):
        raise RuntimeError("database unavailable")

    def release(self):
        pass


def test_lock_acquire_error_fails_the_cycle_and_frees_earlier_locks():
    process_lock = InMemoryCycleLock()
    chained = ChainedCycleLock(process_lock, _ExplodingLock())
    store = FakeStore([_user("a"), _user("b")])

    result = _orchestrator(store, lock=chained).run(NOW)
    assert result.success is False
    assert result.errors == ["Error acquiring cycle lock: database unavailable"]
    assert store.pairs == set()

    assert process_lock.acquire() is True
    process_lock.release()
    retry = _orchestrator(store, lock=ChainedCycleLock(process_lock)).run(NOW)
    assert retry.matches_created == 1
