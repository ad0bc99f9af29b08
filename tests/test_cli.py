from dataclasses import replace

import pytest

from question_bank import cli
from question_bank.backup import BackupManager
from question_bank.config import APP_CONFIG, BackupConfig, FileStoreConfig
from question_bank.file_storage import JsonFileQuestionBackend
from question_bank.question_store import IngestionStore


@pytest.fixture
def config(tmp_path):
    return replace(
        APP_CONFIG,
        storage_backend="file",
        file_store=FileStoreConfig(data_dir=str(tmp_path / "data")),
        backup=BackupConfig(directory=str(tmp_path / "backups"), retention_days=7),
        log_file=None,
    )


class FakeFetcher:
    def __init__(self, questions):
        self.questions = questions

    def fetch_batch(self, topic, count, difficulty):
        return list(self.questions)


class TestCommands:
    def test_fetch_backs_up_then_stores(self, config, monkeypatch, make_question, capsys):
        questions = [make_question("What is JSX?"), make_question("Explain reconciliation")]
        monkeypatch.setattr(cli, "build_fetcher", lambda cfg, model: FakeFetcher(questions))

        assert cli.main(["fetch", "react", "--count", "5"], config=config) == 0

        assert len(BackupManager(config.backup.directory).list()) == 1
        assert JsonFileQuestionBackend(config.file_store.data_dir).count_by_topic("react") == 2
        assert "saved 2" in capsys.readouterr().out

    def test_fetch_nothing(self, config, monkeypatch):
        monkeypatch.setattr(cli, "build_fetcher", lambda cfg, model: FakeFetcher([]))
        assert cli.main(["fetch", "react"], config=config) == 1
        assert BackupManager(config.backup.directory).list() == []

    def test_stats(self, config, make_question, capsys):
        IngestionStore(JsonFileQuestionBackend(config.file_store.data_dir)).save(
            "sql", [make_question("What is a JOIN?", topic="sql")]
        )
        assert cli.main(["stats"], config=config) == 0
        assert "sql: 1 questions (0 easy, 1 medium, 0 hard)" in capsys.readouterr().out

    def test_restore_and_backups(self, config, make_question, capsys):
        BackupManager(config.backup.directory).persist(
            "python", [make_question("What is a decorator?")], model="deepseek"
        )
        assert cli.main(["backups"], config=config) == 0
        assert "python (deepseek): 1 questions in 1 files" in capsys.readouterr().out

        assert cli.main(["restore"], config=config) == 0
        assert JsonFileQuestionBackend(config.file_store.data_dir).count_by_topic("python") == 1

    def test_check_duplicates(self, config, make_question, capsys):
        path = BackupManager(config.backup.directory).persist(
            "react", [make_question("What is JSX?")], model="deepseek"
        )
        assert cli.main(["check-duplicates", path.name], config=config) == 0
        assert "duplicate rate 0%" in capsys.readouterr().out

    def test_clear_requires_confirmation(self, config, make_question):
        IngestionStore(JsonFileQuestionBackend(config.file_store.data_dir)).save(
            "react", [make_question("What is JSX?")]
        )
        assert cli.main(["clear"], config=config) == 2
        assert cli.main(["clear", "--yes"], config=config) == 0
        assert JsonFileQuestionBackend(config.file_store.data_dir).count_by_topic("react") == 0

    def test_recursive_rejects_out_of_range_batch_size(self, config):
        with pytest.raises(SystemExit):
            cli.main(["recursive", "react", "--target", "10", "--batch-size", "7"], config=config)

    def test_recursive_rejects_target_over_ceiling(self, config, monkeypatch):
        monkeypatch.setattr(cli, "build_fetcher", lambda cfg, model: FakeFetcher([]))
        assert cli.main(["recursive", "react", "--target", "5000"], config=config) == 2
