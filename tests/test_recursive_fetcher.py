import pytest

from question_bank.config import FetchConfig
from question_bank.question_store import IngestionStore, StorageError
from question_bank.recursive_fetcher import (
    FetchState,
    InvalidSessionConfig,
    RecursiveFetcher,
    SessionAlreadyRunning,
)


TOPICS = ["javascript", "typescript", "nodejs", "sql", "react", "python"]


class FakeSource:
    """fetch_batch stand-in; `script` entries are "unique", "empty", "error" or a question list."""

    def __init__(self, make_question, random_text, script=None, default="unique"):
        self.make_question = make_question
        self.random_text = random_text
        self.script = list(script or [])
        self.default = default
        self.calls = []
        self.on_call = None

    def __call__(self, topic, count, difficulty):
        self.calls.append((topic, count, difficulty))
        if self.on_call:
            self.on_call(len(self.calls))
        step = self.script.pop(0) if self.script else self.default
        if step == "empty":
            return []
        if step == "error":
            raise RuntimeError("upstream exploded")
        if step == "unique":
            return [self.make_question(self.random_text(), topic=topic) for _ in range(count)]
        return list(step)


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def fetch_config():
    return FetchConfig(
        max_total_questions=1000,
        batch_sizes=[5, 10, 15, 20],
        default_batch_size=10,
        delay_between_batches_ms=2000,
        retry_delay_ms=5000,
        max_consecutive_failures=3,
        progress_update_interval_ms=0,
    )


@pytest.fixture
def ingestion_store(mongo_backend):
    return IngestionStore(mongo_backend, topics=TOPICS)


@pytest.fixture
def source(make_question, random_text):
    return FakeSource(make_question, random_text)


@pytest.fixture
def controller(source, ingestion_store, fetch_config, sleeps):
    return RecursiveFetcher(source, ingestion_store, fetch_config, sleep=sleeps.append, clock=lambda: 0.0)


class TestCompletion:
    def test_reaches_target_in_two_batches(self, controller, source, sleeps):
        final = controller.start("react", 10, batch_size=5)

        assert final.state is FetchState.COMPLETED
        assert final.success is True
        assert final.final_saved == 10
        assert final.progress_percent == 100
        assert final.stats.batches_completed == 2
        assert len(source.calls) == 2
        assert sleeps == [2.0]
        assert controller.state is FetchState.COMPLETED

    def test_last_batch_capped_at_remaining(self, controller, source):
        controller.start("react", 7, batch_size=5, difficulty="hard")
        assert source.calls == [("react", 5, "hard"), ("react", 2, "hard")]

    def test_default_batch_size(self, controller, source):
        controller.start("react", 10)
        assert [count for _, count, _ in source.calls] == [10]

    def test_final_stats_serialization(self, controller):
        data = controller.start("react", 5, batch_size=5).to_dict()
        assert data["finalSaved"] == 5
        assert data["targetCount"] == 5
        assert data["progressPercent"] == 100
        assert data["durationMinutes"] == 0.0
        assert data["state"] == "completed"
        assert data["stats"]["totalSaved"] == 5

    def test_failure_counter_resets_after_success(self, controller, source):
        source.script = ["empty", "empty", "unique", "empty", "empty", "unique"]
        final = controller.start("react", 10, batch_size=5)

        assert final.state is FetchState.COMPLETED
        assert len(source.calls) == 6


class TestFailure:
    def test_only_duplicates_fails_after_budget(self, controller, source, ingestion_store, make_question):
        batch = [make_question(f"{i} " + "x" * i * 10) for i in range(1, 6)]
        ingestion_store.save("react", batch)
        source.default = batch

        final = controller.start("react", 10, batch_size=5)

        assert final.state is FetchState.FAILED
        assert final.success is False
        assert final.final_saved == 0
        assert final.stats.total_duplicates == 15
        assert final.stats.batches_completed == 3
        assert len(source.calls) == 3

    def test_empty_responses_use_retry_delay(self, controller, source, sleeps):
        source.default = "empty"
        final = controller.start("react", 10, batch_size=5)

        assert final.state is FetchState.FAILED
        assert len(source.calls) == 3
        assert sleeps == [5.0, 5.0]

    def test_fetch_exceptions_count_as_failures(self, controller, source):
        source.default = "error"
        final = controller.start("react", 10, batch_size=5)

        assert final.state is FetchState.FAILED
        assert final.stats.consecutive_failures == 3

    def test_storage_errors_count_as_failures(self, source, fetch_config, sleeps):
        class BrokenStore:
            def save(self, topic, questions):
                raise StorageError("mongo is down")

        controller = RecursiveFetcher(source, BrokenStore(), fetch_config, sleep=sleeps.append)
        final = controller.start("react", 10, batch_size=5)

        assert final.state is FetchState.FAILED
        assert final.stats.total_fetched == 0
        assert len(source.calls) == 3

    def test_partial_progress_kept(self, controller, source):
        source.script = ["unique"]
        source.default = "empty"
        final = controller.start("react", 10, batch_size=5)

        assert final.state is FetchState.FAILED
        assert final.final_saved == 5
        assert final.progress_percent == 50


class TestStop:
    def test_stop_mid_session_keeps_saved(self, controller, source, sleeps):
        source.on_call = lambda n: controller.stop() if n == 2 else None
        final = controller.start("react", 20, batch_size=5)

        assert final.state is FetchState.STOPPED
        assert final.success is False
        assert final.final_saved == 10
        assert final.stats.total_saved == 10
        assert len(source.calls) == 2
        assert sleeps == [2.0]

    def test_stop_when_idle_is_noop(self, controller):
        controller.stop()
        assert controller.state is FetchState.IDLE
        assert controller.start("react", 5, batch_size=5).state is FetchState.COMPLETED


class TestGuardrails:
    @pytest.mark.parametrize("target,batch_size", [
        (0, 5),
        (-3, 5),
        (1001, 5),
        (10, 7),
        (10, 0),
    ])
    def test_invalid_config_rejected(self, controller, source, target, batch_size):
        with pytest.raises(InvalidSessionConfig) as excinfo:
            controller.start("react", target, batch_size=batch_size)

        assert isinstance(excinfo.value, ValueError)
        assert controller.state is FetchState.IDLE
        assert source.calls == []

    def test_unknown_topic_rejected_before_fetching(self, controller, source):
        with pytest.raises(InvalidSessionConfig, match="Unknown topic"):
            controller.start("cobol", 5, batch_size=5)

        assert controller.state is FetchState.IDLE
        assert source.calls == []

    def test_default_batch_size_when_omitted(self, controller, source):
        controller.start("react", 10)
        assert [count for _, count, _ in source.calls] == [10]

    def test_second_start_while_running_rejected(self, controller, source):
        observed = {}

        def reenter(n):
            if n == 1:
                before = controller.status()
                with pytest.raises(SessionAlreadyRunning) as excinfo:
                    controller.start("python", 5, batch_size=5)
                observed["error"] = excinfo.value
                observed["unchanged"] = controller.status() == before

        source.on_call = reenter
        final = controller.start("react", 5, batch_size=5)

        assert isinstance(observed["error"], RuntimeError)
        assert observed["unchanged"]
        assert final.state is FetchState.COMPLETED
        assert [topic for topic, _, _ in source.calls] == ["react"]

    def test_can_start_again_after_finish(self, controller):
        controller.start("react", 5, batch_size=5)
        final = controller.start("react", 5, batch_size=5)
        assert final.final_saved == 5
        assert final.stats.batches_completed == 1


class TestProgress:
    def test_progress_payload(self, controller):
        updates = []
        controller.start("react", 10, batch_size=5, on_progress=updates.append)

        assert [u["current"] for u in updates] == [5, 10]
        assert updates[0]["target"] == 10
        assert updates[0]["progressPercent"] == 50
        assert updates[0]["stats"]["batchesCompleted"] == 1
        assert set(updates[0]["stats"]) == {
            "batchesCompleted", "totalFetched", "totalSaved", "totalDuplicates", "consecutiveFailures"
        }

    def test_progress_throttled(self, source, ingestion_store, sleeps):
        config = FetchConfig(progress_update_interval_ms=1000)
        controller = RecursiveFetcher(source, ingestion_store, config, sleep=sleeps.append, clock=lambda: 0.0)
        updates = []
        controller.start("react", 15, batch_size=5, on_progress=updates.append)

        assert len(updates) == 1

    def test_status(self, controller):
        assert controller.status() == {
            "state": "idle",
            "is_running": False,
            "stats": {
                "batchesCompleted": 0,
                "totalFetched": 0,
                "totalSaved": 0,
                "totalDuplicates": 0,
                "consecutiveFailures": 0,
            },
        }
