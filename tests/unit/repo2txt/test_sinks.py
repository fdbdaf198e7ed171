from pathlib import Path

import pytest
from pytest_mock import MockerFixture

from repo2txt.exceptions import SinkError
from repo2txt.sinks import FileSink, MemorySink


@pytest.mark.unit
@pytest.mark.asyncio
async def test_memory_sink_accumulates_and_honours_abort() -> None:
    sink = MemorySink()
    await sink.write("a")
    await sink.write("b")

    assert sink.getvalue() == "ab"

    sink.abort("cancelled by user")
    with pytest.raises(SinkError, match="cancelled by user"):
        await sink.write("c")


@pytest.mark.unit
@pytest.mark.asyncio
async def test_file_sink_drains_at_high_water_mark(tmp_path: Path, mocker: MockerFixture) -> None:
    target = tmp_path / "out.md"
    sink = await FileSink(target, high_water_mark=10).open()
    drain = mocker.spy(sink, "drain")

    await sink.write("aaaa")
    assert drain.call_count == 0
    assert target.read_text(encoding="utf-8") == ""

    await sink.write("bbbbbbbb")
    assert drain.call_count == 1
    assert target.read_text(encoding="utf-8") == "aaaabbbbbbbb"

    await sink.write("c")
    await sink.close()
    assert target.read_text(encoding="utf-8") == "aaaabbbbbbbbc"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_file_sink_open_failure(tmp_path: Path) -> None:
    with pytest.raises(SinkError, match="cannot open"):
        await FileSink(tmp_path / "no-such-dir" / "out.md").open()


@pytest.mark.unit
@pytest.mark.asyncio
async def test_file_sink_abort_then_discard_removes_partial_output(tmp_path: Path) -> None:
    target = tmp_path / "out.md"
    sink = await FileSink(target, high_water_mark=1).open()
    await sink.write("partial")
    assert target.exists()

    sink.abort("consumer went away")
    with pytest.raises(SinkError, match="consumer went away"):
        await sink.write("more")
    await sink.discard()

    assert not target.exists()
