"""Unit tests for file conversion and BatchProcessor."""

from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from unittest.mock import Mock, patch

from jpg2png.batch_processor import BatchProcessor, convert_file, filesystem_for
from jpg2png.models import (
    Config,
    ConversionStatus,
    FileConversionResult,
    ImageFormat,
    ProcessingOption,
    SizeOptimizationParams,
    StageParameters,
)


class TestConvertFile:
    """Test the single-file conversion flow."""

    def test_success_writes_png(self, jpeg_file):
        result = convert_file(jpeg_file, Config())

        assert result.status == ConversionStatus.SUCCESS
        assert result.output_path == jpeg_file.with_suffix(".png")
        assert result.output_path.read_bytes().startswith(b"\x89PNG")
        assert result.result is not None
        assert result.result.final_size == result.output_path.stat().st_size

    def test_applies_requested_options(self, jpeg_file):
        result = convert_file(
            jpeg_file,
            Config(),
            {ProcessingOption.OPTIMIZE_SIZE, ProcessingOption.REDUCE_NOISE},
            StageParameters(size_optimization=SizeOptimizationParams(max_width=50)),
        )

        assert result.status == ConversionStatus.SUCCESS
        assert result.result.applied_options == (
            ProcessingOption.REDUCE_NOISE,
            ProcessingOption.OPTIMIZE_SIZE,
        )
        assert result.result.final_metadata.width == 50

    def test_output_dir(self, jpeg_file, tmp_path):
        output_dir = tmp_path / "converted"
        result = convert_file(jpeg_file, Config(output_dir=output_dir))

        assert result.output_path == output_dir / "photo.png"
        assert result.output_path.exists()

    def test_explicit_output_path(self, jpeg_file, tmp_path):
        target = tmp_path / "renamed.png"
        result = convert_file(jpeg_file, Config(), output_path=target)

        assert result.output_path == target
        assert target.exists()

    def test_webp_output_extension(self, jpeg_file):
        result = convert_file(jpeg_file, Config(output_format=ImageFormat.WEBP))

        assert result.output_path.suffix == ".webp"
        assert result.output_path.read_bytes()[8:12] == b"WEBP"

    def test_skips_existing_with_no_overwrite(self, jpeg_file):
        existing = jpeg_file.with_suffix(".png")
        existing.write_bytes(b"keep me")

        result = convert_file(jpeg_file, Config(no_overwrite=True))

        assert result.status == ConversionStatus.SKIPPED
        assert "no-overwrite" in result.error_message
        assert existing.read_bytes() == b"keep me"

    def test_overwrites_existing_by_default(self, jpeg_file):
        existing = jpeg_file.with_suffix(".png")
        existing.write_bytes(b"old")

        result = convert_file(jpeg_file, Config())

        assert result.status == ConversionStatus.SUCCESS
        assert existing.read_bytes().startswith(b"\x89PNG")

    def test_missing_file_fails(self, tmp_path):
        result = convert_file(tmp_path / "missing.jpg", Config())

        assert result.status == ConversionStatus.FAILED
        assert "File not found" in result.error_message
        assert result.output_path is None

    def test_non_jpeg_content_fails(self, tmp_path, png_bytes):
        disguised = tmp_path / "disguised.jpg"
        disguised.write_bytes(png_bytes)

        result = convert_file(disguised, Config())

        assert result.status == ConversionStatus.FAILED
        assert "Invalid file format" in result.error_message
        assert not disguised.with_suffix(".png").exists()

    def test_unexpected_error_is_reported(self, jpeg_file):
        with patch(
            "jpg2png.batch_processor.ConversionPipeline.process",
            side_effect=RuntimeError("kaboom"),
        ):
            result = convert_file(jpeg_file, Config())

        assert result.status == ConversionStatus.FAILED
        assert result.error_message == "Internal error: kaboom"


def test_filesystem_for_uses_config():
    filesystem = filesystem_for(Config(output_format=ImageFormat.JPEG, max_upload_bytes=10))
    assert filesystem.max_file_size == 10
    assert filesystem.output_extension == ".jpg"


class TestBatchProcessor:
    """Test BatchProcessor class."""

    def test_init_with_explicit_workers(self):
        config = Config(parallel_workers=4)
        processor = BatchProcessor(config)

        assert processor.worker_count == 4
        assert processor.config == config

    def test_init_with_auto_workers(self):
        with patch("os.cpu_count", return_value=16):
            assert BatchProcessor(Config()).worker_count == 8

    def test_init_with_auto_workers_low_cpu(self):
        with patch("os.cpu_count", return_value=2):
            assert BatchProcessor(Config()).worker_count == 2

    def test_init_with_auto_workers_fallback(self):
        with patch("os.cpu_count", return_value=None):
            assert BatchProcessor(Config()).worker_count == 4

    def test_process_batch_empty(self):
        results = BatchProcessor(Config()).process_batch([])

        assert results.total_files == 0
        assert results.results == []
        assert results.success_rate() == 0.0

    def test_progress_callback_called(self):
        progress_callback = Mock()
        processor = BatchProcessor(Config(), progress_callback=progress_callback)
        test_file = Path("test.jpg")
        mock_result = FileConversionResult(
            input_path=test_file,
            output_path=Path("test.png"),
            status=ConversionStatus.SUCCESS,
        )

        with (
            patch("jpg2png.batch_processor.ProcessPoolExecutor", ThreadPoolExecutor),
            patch(
                "jpg2png.batch_processor._process_single_file_worker",
                return_value=mock_result,
            ),
        ):
            processor.process_batch([test_file])

        progress_callback.assert_called_once_with(1, 1, "test.jpg")

    def test_worker_receives_options_and_params(self):
        processor = BatchProcessor(Config())
        params = StageParameters()
        worker = Mock(
            side_effect=lambda file_path, *args: FileConversionResult(
                input_path=file_path, output_path=None, status=ConversionStatus.SUCCESS
            )
        )

        with (
            patch("jpg2png.batch_processor.ProcessPoolExecutor", ThreadPoolExecutor),
            patch("jpg2png.batch_processor._process_single_file_worker", worker),
        ):
            processor.process_batch(
                [Path("a.jpg")],
                [ProcessingOption.REDUCE_NOISE, ProcessingOption.REDUCE_NOISE],
                params,
            )

        file_path, config, options, passed_params, output_path = worker.call_args.args
        assert file_path == Path("a.jpg")
        assert config is processor.config
        assert options == frozenset({ProcessingOption.REDUCE_NOISE})
        assert passed_params is params
        assert output_path == Path("a.png")

    def test_result_aggregation(self):
        processor = BatchProcessor(Config())
        files = [Path(f"test{i}.jpg") for i in range(5)]
        statuses = {
            "test2.jpg": ConversionStatus.FAILED,
            "test3.jpg": ConversionStatus.SKIPPED,
        }

        def mock_worker(file_path, *args):
            return FileConversionResult(
                input_path=file_path,
                output_path=None,
                status=statuses.get(file_path.name, ConversionStatus.SUCCESS),
                error_message="Test error" if file_path.name in statuses else None,
            )

        with (
            patch("jpg2png.batch_processor.ProcessPoolExecutor", ThreadPoolExecutor),
            patch("jpg2png.batch_processor._process_single_file_worker", side_effect=mock_worker),
        ):
            results = processor.process_batch(files)

        assert results.total_files == 5
        assert results.successful == 3
        assert results.failed == 1
        assert results.skipped == 1
        assert results.success_rate() == 60.0

    def test_error_isolation(self):
        processor = BatchProcessor(Config())
        files = [Path(f"test{i}.jpg") for i in range(3)]

        def mock_worker(file_path, *args):
            if file_path.name == "test1.jpg":
                raise RuntimeError("Test error")
            return FileConversionResult(
                input_path=file_path, output_path=None, status=ConversionStatus.SUCCESS
            )

        with (
            patch("jpg2png.batch_processor.ProcessPoolExecutor", ThreadPoolExecutor),
            patch("jpg2png.batch_processor._process_single_file_worker", side_effect=mock_worker),
        ):
            results = processor.process_batch(files)

        assert len(results.results) == 3
        assert results.successful == 2
        assert results.failed == 1
        failed = [r for r in results.results if r.status == ConversionStatus.FAILED]
        assert failed[0].input_path.name == "test1.jpg"
        assert "Test error" in failed[0].error_message

    def test_real_files(self, tmp_path, jpeg_bytes):
        files = []
        for name in ("one.jpg", "two.jpeg"):
            path = tmp_path / name
            path.write_bytes(jpeg_bytes)
            files.append(path)
        (tmp_path / "bad.jpg").write_bytes(b"not a jpeg at all")
        files.append(tmp_path / "bad.jpg")

        with patch("jpg2png.batch_processor.ProcessPoolExecutor", ThreadPoolExecutor):
            results = BatchProcessor(Config(parallel_workers=2)).process_batch(
                files, [ProcessingOption.OPTIMIZE_SIZE]
            )

        assert results.successful == 2
        assert results.failed == 1
        assert (tmp_path / "one.png").exists()
        assert (tmp_path / "two.png").exists()
        assert not (tmp_path / "bad.png").exists()


class TestOutputPlanning:
    """Test in-batch output collision handling."""

    def test_unique_names_unchanged(self):
        processor = BatchProcessor(Config())
        planned = processor._plan_output_paths([Path("a/x.jpg"), Path("a/y.jpg")])
        assert [output for _, output in planned] == [Path("a/x.png"), Path("a/y.png")]

    def test_collision_in_output_dir_gets_hash_suffix(self, tmp_path):
        processor = BatchProcessor(Config(output_dir=tmp_path))
        first = Path("one/photo.jpg")
        second = Path("two/photo.jpeg")

        planned = processor._plan_output_paths([first, second])
        outputs = [output for _, output in planned]

        assert outputs[0] == tmp_path / "photo.png"
        assert outputs[1] != outputs[0]
        assert outputs[1].parent == tmp_path
        assert outputs[1].name.startswith("photo_")
        assert outputs[1].suffix == ".png"

    def test_same_stem_in_same_directory(self):
        processor = BatchProcessor(Config())
        planned = processor._plan_output_paths([Path("d/photo.jpg"), Path("d/photo.jpeg")])
        outputs = [output for _, output in planned]
        assert len(set(outputs)) == 2

    def test_collision_suffix_is_deterministic(self):
        base = Path("out/photo.png")
        source = Path("in/photo.jpg")
        first = BatchProcessor._with_collision_suffix(base, source, 0)
        assert first == BatchProcessor._with_collision_suffix(base, source, 0)
        assert BatchProcessor._with_collision_suffix(base, source, 1).stem.endswith("_1")
