"""Tests for argument handling in the command-line entry point."""

import json
from datetime import timedelta
from pathlib import Path

import pytest

import main
from domain.errors import CacheError
from domain.job import BatchJob, JobStatus
from engine.config import CACHE_PATH, DEFAULT_CONCURRENCY, PipelineSettings
from infrastructure.json_exporter import save_json
from infrastructure.translation_cache import TranslationCache


@pytest.fixture(autouse=True)
def _quiet_logging(monkeypatch):
    """Keep the CLI from reconfiguring pytest's log handlers."""
    monkeypatch.setattr(main, "setup_logging", lambda level: None)


class TestParser:
    def test_defaults(self):
        args = main.build_parser().parse_args(["-i", "manga/chapter1"])
        settings = main.settings_from_args(args)

        assert settings.concurrency == DEFAULT_CONCURRENCY
        assert settings.source_language == "ja"
        assert settings.target_language == "en"
        assert settings.cache_path == CACHE_PATH
        assert settings.cache_max_age == timedelta(days=7)
        assert settings.device == "cpu"

    def test_options_map_to_settings(self):
        args = main.build_parser().parse_args([
            "-i", "series",
            "--source-lang", "ko",
            "--target-lang", "fr",
            "--concurrency", "4",
            "--queue-capacity", "16",
            "--overlap-threshold", "0.3",
            "--cache-path", "/tmp/t.db",
            "--cache-max-age-days", "2",
            "--font", "/fonts/comic.ttf",
        ])
        settings = main.settings_from_args(args)

        assert settings == PipelineSettings(
            concurrency=4,
            queue_capacity=16,
            overlap_threshold=0.3,
            source_language="ko",
            target_language="fr",
            cache_path="/tmp/t.db",
            cache_max_age=timedelta(days=2),
            font_path="/fonts/comic.ttf",
        )

    def test_invalid_settings_are_rejected(self):
        with pytest.raises(ValueError):
            main.settings_from_args(main.build_parser().parse_args(["-i", "x", "--concurrency", "0"]))
        with pytest.raises(ValueError):
            main.settings_from_args(main.build_parser().parse_args(["-i", "x", "--target-lang", "auto"]))


class TestMain:
    def test_input_is_required(self):
        with pytest.raises(SystemExit) as exc:
            main.main([])
        assert exc.value.code == 2

    def test_bad_option_value_exits_with_usage_error(self):
        with pytest.raises(SystemExit) as exc:
            main.main(["-i", "x", "--overlap-threshold", "1.5"])
        assert exc.value.code == 2

    def test_sweep_cache_only(self, tmp_path: Path, capsys):
        db_path = str(tmp_path / "translations.db")
        with TranslationCache(db_path) as cache:
            cache.put("古い", "old", "ja", "en")

        code = main.main(["--sweep-cache", "--cache-path", db_path, "--cache-max-age-days", "0"])

        assert code == 0
        assert "Removed 1 stale translation(s)" in capsys.readouterr().out
        with TranslationCache(db_path) as cache:
            assert len(cache) == 0

    def test_missing_input_fails(self, tmp_path: Path, capsys):
        code = main.main([
            "-i", str(tmp_path / "nope"),
            "--cache-path", str(tmp_path / "t.db"),
            "--no-progress",
        ])

        assert code == 1
        assert "Input directory does not exist" in capsys.readouterr().err

    def test_unopenable_cache_does_not_stop_the_batch(self, tmp_path: Path, capsys):
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory")

        code = main.main([
            "-i", str(tmp_path / "nope"),
            "--cache-path", str(blocker / "sub" / "t.db"),
            "--no-progress",
        ])

        # the batch itself ran and failed on its own setup check
        assert code == 1
        assert "Input directory does not exist" in capsys.readouterr().err

    def test_sweep_with_unopenable_cache_fails(self, tmp_path: Path):
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory")

        code = main.main(["--sweep-cache", "--cache-path", str(blocker / "t.db")])

        assert code == 1


class TestOpenCache:
    def test_falls_back_to_memory(self, tmp_path: Path):
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory")
        settings = PipelineSettings(cache_path=str(blocker / "sub" / "t.db"))

        with main.open_cache(settings) as cache:
            assert cache.db_path == ":memory:"
            cache.put("猫", "cat", "ja", "en")
            assert cache.get("猫", "ja", "en") == "cat"

    def test_required_cache_raises(self, tmp_path: Path):
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory")
        settings = PipelineSettings(cache_path=str(blocker / "t.db"))

        with pytest.raises(CacheError):
            main.open_cache(settings, required=True)


class TestReport:
    def test_save_json(self, tmp_path: Path):
        job = BatchJob(input_path="/in", target_language="en")
        job.start()
        job.fail("Invalid folder structure")

        path = save_json(job, str(tmp_path / "reports" / "batch.json"))

        report = json.loads(Path(path).read_text(encoding="utf-8"))
        assert report["status"] == JobStatus.FAILED.value
        assert report["reason"] == "Invalid folder structure"
