"""
Tests for the multi-iteration orchestrator.

Uses FakeStage so no FFmpeg is needed; the orchestrator's own file handling
(manifest, rename, cleanup) runs against a real temporary directory.
"""

import pytest

from fakes import FakeStage
from transcoder.execution.errors import ConcatenationError, EncodeError
from transcoder.execution.failures import FailureKind
from transcoder.execution.orchestrator import MultiIterationOrchestrator, concat_quote
from transcoder.execution.progress import iteration_window
from transcoder.jobs.models import Job, TargetFormat


def _job(repeat_count=1, target_format=TargetFormat.MP4):
    return Job(
        owner_id="user-1",
        source_ref="user-1/clip.mp4",
        target_resolution="640x360",
        target_format=target_format,
        repeat_count=repeat_count,
    )


class TestMultiIterationOrchestrator:
    """Iteration sequencing, progress windows and cleanup."""

    @pytest.fixture
    def work_dir(self, tmp_path):
        return tmp_path / "work"

    def _run(self, stage, work_dir, job):
        events = []
        orchestrator = MultiIterationOrchestrator(stage, work_dir)
        final = orchestrator.run(job, "https://signed/clip.mp4", lambda p, d: events.append((p, d)))
        return orchestrator, final, events

    def test_single_iteration_is_renamed_into_place(self, work_dir):
        stage = FakeStage()
        job = _job()

        _, final, events = self._run(stage, work_dir, job)

        assert final == work_dir / f"{job.id}.mp4"
        assert final.read_bytes() == b"iteration-1|"
        assert sorted(work_dir.iterdir()) == [final]
        assert len(stage.encode_calls) == 1
        assert stage.concat_calls == []
        assert events[-1][0] == 100.0
        assert events[-1][1].message == "Encoding finished, uploading..."

    def test_encode_receives_job_targets(self, work_dir):
        stage = FakeStage()
        job = _job(target_format=TargetFormat.WEBM)

        self._run(stage, work_dir, job)

        call = stage.encode_calls[0]
        assert call["input_url"] == "https://signed/clip.mp4"
        assert call["resolution"] == "640x360"
        assert call["target_format"] == TargetFormat.WEBM
        assert call["output_path"].name == f"{job.id}_iteration_1.webm"

    def test_three_iterations_are_concatenated_once(self, work_dir):
        stage = FakeStage()
        job = _job(repeat_count=3)

        orchestrator, final, _ = self._run(stage, work_dir, job)

        assert len(stage.encode_calls) == 3
        assert len(stage.concat_calls) == 1
        concat = stage.concat_calls[0]
        assert concat["lines"] == [
            f"file '{orchestrator.iteration_path(job, i).resolve()}'" for i in (1, 2, 3)
        ]
        assert concat["sources_exist"] is True
        assert concat["duration"] == 30.0
        assert final.read_bytes() == b"iteration-1|iteration-2|iteration-3|"
        assert sorted(work_dir.iterdir()) == [final]

    def test_manifest_escapes_quotes_in_paths(self, tmp_path):
        stage = FakeStage()
        work_dir = tmp_path / "o'brien work"

        _, final, _ = self._run(stage, work_dir, _job(repeat_count=2))

        concat = stage.concat_calls[0]
        assert all("o'\\''brien work" in line for line in concat["lines"])
        assert concat["sources_exist"] is True
        assert final.read_bytes() == b"iteration-1|iteration-2|"

    def test_progress_stays_in_iteration_windows(self, work_dir):
        _, _, events = self._run(FakeStage(), work_dir, _job(repeat_count=3))

        percents = [p for p, _ in events]
        assert all(later >= earlier - 1e-9 for earlier, later in zip(percents, percents[1:]))
        assert percents[-1] == 100.0

        for percent, detail in events:
            if detail.stage == "encoding":
                low, high = iteration_window(detail.iteration, 3)
                assert low - 1e-9 <= percent <= high + 1e-9
                assert percent <= 95.0 + 1e-9
                assert detail.message == f"Transcoding iteration {detail.iteration} of 3..."
            else:
                assert detail.stage == "finalizing"
                assert percent >= 95.0

    def test_stitching_message_precedes_concatenation(self, work_dir):
        _, _, events = self._run(FakeStage(), work_dir, _job(repeat_count=2))

        stitching = [d for _, d in events if d.message == "Stitching 2 iterations together..."]
        assert stitching
        assert stitching[0].stage == "finalizing"

    def test_iteration_failure_cleans_up(self, work_dir):
        stage = FakeStage(fail_on_iteration=2)
        job = _job(repeat_count=3)
        orchestrator = MultiIterationOrchestrator(stage, work_dir)

        with pytest.raises(EncodeError) as exc_info:
            orchestrator.run(job, "in.mp4")

        assert exc_info.value.kind == FailureKind.RESOURCE_EXHAUSTED
        assert len(stage.encode_calls) == 2
        assert stage.concat_calls == []
        assert list(work_dir.iterdir()) == []

    def test_concat_failure_cleans_up(self, work_dir):
        stage = FakeStage(fail_concat=True)
        job = _job(repeat_count=2)
        orchestrator = MultiIterationOrchestrator(stage, work_dir)

        with pytest.raises(ConcatenationError):
            orchestrator.run(job, "in.mp4")

        assert not orchestrator.final_path(job).exists()
        assert list(work_dir.iterdir()) == []

    def test_rerun_overwrites_previous_leftovers(self, work_dir):
        job = _job(repeat_count=2)
        orchestrator = MultiIterationOrchestrator(FakeStage(), work_dir)
        work_dir.mkdir()
        orchestrator.iteration_path(job, 1).write_bytes(b"stale")

        final = orchestrator.run(job, "in.mp4")

        assert final.read_bytes() == b"iteration-1|iteration-2|"
        assert sorted(work_dir.iterdir()) == [final]


class TestConcatQuote:

    def test_plain_path(self, tmp_path):
        assert concat_quote(tmp_path / "a.mp4") == f"'{tmp_path / 'a.mp4'}'"

    def test_single_quote_is_escaped(self):
        assert concat_quote("/work/it's.mp4") == "'/work/it'\\''s.mp4'"
