"""
Tests for the worker command line.
"""

import io
import json
import logging

import pytest
import yaml
from PIL import Image

from vapourbox.__main__ import EXIT_FAILURE, EXIT_SUCCESS, build_parser, main
from vapourbox.config import VapourBoxConfig, set_config
from vapourbox.models import parse_worker_message


@pytest.fixture(autouse=True)
def restore_logging():
    logger = logging.getLogger("vapourbox")
    handlers, level, propagate = list(logger.handlers), logger.level, logger.propagate
    yield
    logger.handlers = handlers
    logger.setLevel(level)
    logger.propagate = propagate
    set_config(VapourBoxConfig())


@pytest.fixture
def settings_file(tmp_path):
    def factory(config: VapourBoxConfig) -> str:
        path = tmp_path / "vapourbox.yaml"
        path.write_text(yaml.safe_dump(config.model_dump()), encoding="utf-8")
        return str(path)

    return factory


def records(out: str):
    return [parse_worker_message(line) for line in out.splitlines() if line.strip()]


class TestArguments:

    def test_config_is_required(self):
        with pytest.raises(SystemExit) as exc_info:
            build_parser().parse_args([])
        assert exc_info.value.code == 2

    def test_log_level_is_case_insensitive(self):
        args = build_parser().parse_args(["--config", "job.json", "--log-level", "debug"])
        assert args.log_level == "DEBUG"

    def test_preview_needs_a_frame(self, job_file, settings_file, fake_engines):
        settings = settings_file(fake_engines.config())
        with pytest.raises(SystemExit) as exc_info:
            main(["--config", str(job_file()), "--settings", settings, "--preview"])
        assert exc_info.value.code == 2

    def test_unreadable_settings(self, job_file, tmp_path):
        bad = tmp_path / "bad.yaml"
        bad.write_text("engines: [unclosed", encoding="utf-8")
        with pytest.raises(SystemExit) as exc_info:
            main(["--config", str(job_file()), "--settings", str(bad)])
        assert exc_info.value.code == 2


class TestJobMode:

    def test_success(self, job_file, settings_file, fake_engines, capsys):
        path = job_file()
        code = main(["--config", str(path), "--settings", settings_file(fake_engines.config())])

        assert code == EXIT_SUCCESS
        messages = records(capsys.readouterr().out)
        assert messages[-1].type == "complete"
        assert messages[-1].success is True
        assert messages[-1].output_path == json.loads(path.read_text())["outputPath"]
        assert any(m.type == "progress" for m in messages)

    def test_engine_failure(self, job_file, settings_file, fake_engines, capsys):
        settings = settings_file(fake_engines.config(vspipe_mode="crash"))
        code = main(["--config", str(job_file()), "--settings", settings])

        assert code == EXIT_FAILURE
        messages = records(capsys.readouterr().out)
        assert messages[-1].type == "error"
        assert "vspipe exited with code 1" in messages[-1].message
        assert not any(m.type == "complete" for m in messages)

    def test_invalid_descriptor(self, tmp_path, capsys):
        path = tmp_path / "job.json"
        path.write_text("{broken", encoding="utf-8")

        code = main(["--config", str(path), "--settings", str(tmp_path / "absent.yaml")])

        assert code == EXIT_FAILURE
        messages = records(capsys.readouterr().out)
        assert len(messages) == 1
        assert messages[0].type == "error"
        assert "Invalid job descriptor" in messages[0].message

    def test_missing_descriptor(self, tmp_path, capsys):
        code = main(["--config", str(tmp_path / "nope.json"), "--settings", str(tmp_path / "absent.yaml")])
        assert code == EXIT_FAILURE
        assert records(capsys.readouterr().out)[0].type == "error"

    def test_undecodable_descriptor(self, tmp_path, capsys):
        path = tmp_path / "job.json"
        path.write_bytes(b"\xff\xfe{}")

        code = main(["--config", str(path), "--settings", str(tmp_path / "absent.yaml")])

        assert code == EXIT_FAILURE
        messages = records(capsys.readouterr().out)
        assert len(messages) == 1
        assert messages[0].type == "error"
        assert "Cannot read job descriptor" in messages[0].message

    def test_unusable_temp_directory(self, job_file, settings_file, fake_engines, tmp_path, capsys):
        blocker = tmp_path / "blocker"
        blocker.write_text("")
        settings = settings_file(fake_engines.config(temp_directory=str(blocker / "runs")))

        code = main(["--config", str(job_file()), "--settings", settings])

        assert code == EXIT_FAILURE
        messages = records(capsys.readouterr().out)
        assert messages[-1].type == "error"
        assert "Cannot create a run directory" in messages[-1].message
        assert not any(m.type == "complete" for m in messages)


class TestPreviewMode:

    def test_png_on_stdout(self, job_file, settings_file, fake_engines, capsysbinary):
        settings = settings_file(fake_engines.config())
        code = main(["--config", str(job_file()), "--settings", settings, "--preview", "--frame", "3"])

        assert code == EXIT_SUCCESS
        out = capsysbinary.readouterr().out
        assert Image.open(io.BytesIO(out)).size == (4, 2)

    def test_frame_from_descriptor(self, job_file, settings_file, fake_engines, capsysbinary):
        settings = settings_file(fake_engines.config())
        code = main(["--config", str(job_file(preview_frame=7)), "--settings", settings, "--preview"])

        assert code == EXIT_SUCCESS
        assert "clip = clip[7:8]" in fake_engines.recorded("last_script.vpy")

    def test_failure_goes_to_stderr(self, job_file, settings_file, fake_engines, capsysbinary):
        settings = settings_file(fake_engines.config(vspipe_mode="crash"))
        code = main(["--config", str(job_file()), "--settings", settings, "--preview", "--frame", "0"])

        assert code == EXIT_FAILURE
        captured = capsysbinary.readouterr()
        assert captured.out == b""
        assert b"Preview failed" in captured.err
