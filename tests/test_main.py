"""Tests for main.py CLI functionality."""

from contextlib import asynccontextmanager
from unittest.mock import patch

import pytest
from PIL import Image

from thumbnail_pipeline.main import build_parser, main
from thumbnail_pipeline.testing import create_test_image, setup_test_s3_environment
from thumbnail_pipeline.testing.fakes import INPUT_BUCKET, OUTPUT_BUCKET


def _fake_factory(s3_client):
    """Stand-in for S3ClientFactory whose clients are ``s3_client``."""

    class _Factory:
        @asynccontextmanager
        async def open_client(self, config):
            yield s3_client

    return _Factory


def _write_sources(tmp_path, count=2):
    paths = []
    for i in range(count):
        path = tmp_path / f"source{i}.jpg"
        path.write_bytes(create_test_image(200, 100))
        paths.append(str(path))
    return paths


class TestMainCLI:
    """Tests for the main CLI functionality."""

    def test_main_with_no_args_shows_help(self):
        """Test that running main without arguments shows help."""
        with patch("sys.argv", ["thumbnail-pipeline"]):
            with patch("argparse.ArgumentParser.print_help") as mock_help:
                with patch("sys.exit") as mock_exit:
                    main()
                    mock_help.assert_called_once()
                    mock_exit.assert_called_once_with(1)

    def test_main_version_command(self):
        """Test version command output."""
        with patch("sys.argv", ["thumbnail-pipeline", "version"]):
            with patch("builtins.print") as mock_print:
                with patch("sys.exit") as mock_exit:
                    main()
                    mock_print.assert_any_call("Thumbnail Pipeline CLI")
                    mock_print.assert_any_call("Version 0.1.0")
                    mock_exit.assert_called_once_with(0)

    def test_generate_defaults(self):
        """Test the generate command falls back to the default output settings."""
        args = build_parser().parse_args(["generate", "a.jpg", "--output-dir", "out"])

        assert args.format == "jpeg"
        assert args.max_width == 300
        assert args.quality is None
        assert args.compression is None
        assert not args.remote
        assert args.concurrency == 8
        assert args.input_bucket == "cloudthumb-app-input"

    def test_generate_requires_output_dir(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["generate", "a.jpg"])

    def test_generate_local(self, tmp_path):
        """Local generation writes one thumbnail per source."""
        sources = _write_sources(tmp_path)
        output_dir = tmp_path / "thumbs"
        argv = [
            "generate", *sources,
            "--output-dir", str(output_dir),
            "--format", "png",
            "--max-width", "50",
            "--tagging-api-key", "",
        ]

        with pytest.raises(SystemExit) as exc_info:
            main(argv)

        assert exc_info.value.code == 0
        written = sorted(p.name for p in output_dir.iterdir())
        assert written == ["processed_image_demo.png", "processed_image_demo_1.png"]
        for path in output_dir.iterdir():
            assert Image.open(path).size == (50, 25)

    def test_generate_reports_failures(self, tmp_path):
        broken = tmp_path / "broken.jpg"
        broken.write_bytes(b"not an image")

        with pytest.raises(SystemExit) as exc_info:
            main(["generate", str(broken), "--output-dir", str(tmp_path / "out"),
                  "--tagging-api-key", ""])

        assert exc_info.value.code == 1

    def test_generate_remote(self, tmp_path):
        """Remote generation uploads sources and keeps the worker's output."""
        fake_s3 = setup_test_s3_environment(worker_output=b"remote-bytes")
        sources = _write_sources(tmp_path, count=1)
        output_dir = tmp_path / "thumbs"
        argv = [
            "generate", *sources,
            "--output-dir", str(output_dir),
            "--remote",
            "--access-key-id", "AKIATEST",
            "--secret-access-key", "secret",
            "--input-bucket", INPUT_BUCKET,
            "--output-bucket", OUTPUT_BUCKET,
            "--tagging-api-key", "",
        ]

        with patch("thumbnail_pipeline.main.S3ClientFactory", _fake_factory(fake_s3)):
            with pytest.raises(SystemExit) as exc_info:
                main(argv)

        assert exc_info.value.code == 0
        assert (output_dir / "processed_image_demo.jpg").read_bytes() == b"remote-bytes"
        assert len(fake_s3.get_bucket(INPUT_BUCKET).objects) == 1

    def test_test_connection_without_credentials(self):
        with pytest.raises(SystemExit) as exc_info:
            main(["test-connection"])
        assert exc_info.value.code == 1

    def test_test_connection_success(self):
        fake_s3 = setup_test_s3_environment()
        argv = [
            "test-connection",
            "--access-key-id", "AKIATEST",
            "--secret-access-key", "secret",
            "--input-bucket", INPUT_BUCKET,
        ]

        with patch("thumbnail_pipeline.main.S3ClientFactory", _fake_factory(fake_s3)):
            with pytest.raises(SystemExit) as exc_info:
                main(argv)

        assert exc_info.value.code == 0
        assert fake_s3.operation_count == 1

    def test_test_connection_missing_bucket(self):
        fake_s3 = setup_test_s3_environment()
        argv = [
            "test-connection",
            "--access-key-id", "AKIATEST",
            "--secret-access-key", "secret",
            "--input-bucket", "does-not-exist",
        ]

        with patch("thumbnail_pipeline.main.S3ClientFactory", _fake_factory(fake_s3)):
            with pytest.raises(SystemExit) as exc_info:
                main(argv)

        assert exc_info.value.code == 1
