"""Tests for the threaded icon pipeline."""

import io
from unittest.mock import MagicMock, patch

import pytest

from iconsmith.errors import ExternalServiceError
from iconsmith.imaging import pipeline as pipeline_module
from iconsmith.imaging.pipeline import IconPipeline, calculate_fidelity
from iconsmith.models import EffectConfig


@pytest.fixture
def pipeline():
    p = IconPipeline(max_workers=2, cache_bytes=16 * 1024**2)
    yield p
    p.shutdown()


def _png_bytes(buffer):
    out = io.BytesIO()
    buffer.to_image().save(out, format="PNG")
    return out.getvalue()


def test_calculate_fidelity():
    assert calculate_fidelity(1024, 1024) == pytest.approx(100.0)
    assert calculate_fidelity(512, 512) == pytest.approx(50.0)
    assert calculate_fidelity(4096, 4096) == 100.0
    assert calculate_fidelity(0, 10) == 0.0


def test_ingest_records_fidelity(pipeline, red_square):
    asset_id = pipeline.ingest(red_square, name="square")
    asset = pipeline.store.get(asset_id)
    assert asset.name == "square"
    assert asset.fidelity == pytest.approx(6.25)


def test_render_commits_output(pipeline, red_square):
    asset_id = pipeline.ingest(red_square)
    output = pipeline.submit_render(asset_id, 64).result(timeout=30)
    assert (output.width, output.height) == (64, 64)
    assert pipeline.store.get(asset_id).output == output


def test_repeated_render_uses_cache(pipeline, red_square):
    asset_id = pipeline.ingest(red_square)
    with patch.object(pipeline_module, "composite", wraps=pipeline_module.composite) as spy:
        first = pipeline.submit_render(asset_id, 48).result(timeout=30)
        second = pipeline.submit_render(asset_id, 48).result(timeout=30)
        assert spy.call_count == 1
    assert first == second


def test_superseded_render_is_dropped(red_square):
    p = IconPipeline(max_workers=1)
    p.executor.shutdown()
    p.executor = MagicMock()
    asset_id = p.ingest(red_square)

    p.submit_render(asset_id, 32)
    p.submit_render(asset_id, 40)
    (fn_old, *args_old), _ = p.executor.submit.call_args_list[0]
    (fn_new, *args_new), _ = p.executor.submit.call_args_list[1]

    # Newer request finishes first; the older one must not overwrite it
    newer = fn_new(*args_new)
    assert newer.width == 40
    assert fn_old(*args_old) is None
    assert p.store.get(asset_id).output.width == 40


def test_render_of_deleted_asset_is_dropped(red_square):
    p = IconPipeline(max_workers=1)
    p.executor.shutdown()
    p.executor = MagicMock()
    asset_id = p.ingest(red_square)
    p.submit_render(asset_id, 32)
    (fn, *args), _ = p.executor.submit.call_args
    p.delete(asset_id)
    assert fn(*args) is None


def test_failure_stays_in_its_own_future(pipeline, red_square):
    good = pipeline.ingest(red_square)
    bad = pipeline.ingest(red_square)
    bad_future = pipeline.submit_render(bad, 0)
    good_future = pipeline.submit_render(good, 32)
    with pytest.raises(ValueError):
        bad_future.result(timeout=30)
    assert good_future.result(timeout=30).width == 32


def test_cleanup_replaces_source(pipeline, red_square):
    asset_id = pipeline.ingest(red_square)
    cleaned = pipeline.submit_cleanup(asset_id, 80, True, 128, 0.12).result(timeout=30)
    asset = pipeline.store.get(asset_id)
    assert asset.generation == 1
    assert asset.source == cleaned
    assert (cleaned.width, cleaned.height) == (128, 128)
    assert cleaned.alpha[0, 0] == 0


def test_render_after_cleanup_uses_new_source(pipeline, red_square):
    asset_id = pipeline.ingest(red_square)
    before = pipeline.submit_render(asset_id, 64, EffectConfig(remove_background=False)).result(timeout=30)
    pipeline.submit_cleanup(asset_id, 80, True, 128, 0.12).result(timeout=30)
    after = pipeline.submit_render(asset_id, 64, EffectConfig(remove_background=False)).result(timeout=30)
    assert before.alpha[1, 1] == 0  # margin
    assert before != after


def test_render_all(pipeline, red_square, solid_red):
    ids = {pipeline.ingest(red_square), pipeline.ingest(solid_red)}
    futures = pipeline.render_all(32)
    assert set(futures) == ids
    for future in futures.values():
        assert future.result(timeout=30).width == 32


def test_generated_source_replaces_asset(pipeline, red_square, solid_red):
    asset_id = pipeline.ingest(solid_red)
    generator = MagicMock()
    generator.generate.return_value = _png_bytes(red_square)

    result = pipeline.submit_generated(asset_id, generator, "a red square").result(timeout=30)
    generator.generate.assert_called_once_with("a red square")
    assert pipeline.store.get(asset_id).source == result
    assert result.alpha[0, 0] == 0
    assert result.has_content()


def test_generation_failure_surfaces_in_future(pipeline, solid_red):
    asset_id = pipeline.ingest(solid_red)
    generator = MagicMock()
    generator.generate.side_effect = ConnectionError("offline")

    future = pipeline.submit_generated(asset_id, generator, "anything")
    with pytest.raises(ExternalServiceError) as excinfo:
        future.result(timeout=30)
    assert excinfo.value.hint
    assert pipeline.store.get(asset_id).generation == 0


def test_ingest_bytes_and_path(pipeline, red_square, tmp_path):
    data = _png_bytes(red_square)
    asset_id = pipeline.ingest_bytes(data, name="from-bytes")
    assert pipeline.store.get(asset_id).source == red_square

    path = tmp_path / "icon.png"
    path.write_bytes(data)
    asset_id = pipeline.ingest_path(path)
    assert pipeline.store.get(asset_id).name == "icon"
