"""Tests for tag extraction.

Hey future me - most tests use fake tag blocks so they don't depend on real audio files.
TestMutagenAudioProbe builds a tiny real WAV with the stdlib wave module and tags it with
mutagen, which exercises the actual adapter path end to end.
"""

import wave
from pathlib import Path
from typing import Any

import pytest
from mutagen.id3 import APIC, TALB, TDRC, TIT2, TPE1, TRCK, USLT
from mutagen.wave import WAVE

from cadenza.domain.exceptions import MetadataError, TagReadError
from cadenza.infrastructure.tagging import MutagenAudioProbe, TagExtractor
from cadenza.infrastructure.tagging.blocks import parse_track_number, parse_year


def _write_wav(path: Path, seconds: int = 1) -> Path:
    with wave.open(str(path), "wb") as wav:
        wav.setnchannels(1)
        wav.setsampwidth(2)
        wav.setframerate(8000)
        wav.writeframes(b"\x00\x00" * 8000 * seconds)
    return path


class TestFieldResolution:
    """First non-empty value across blocks wins, then defaults."""

    async def test_first_non_empty_block_wins(
        self, tmp_path: Path, fake_probe: Any, fake_block: Any, make_audio: Any
    ) -> None:
        path = make_audio(tmp_path / "song.mp3")
        fake_probe.register(
            path,
            fake_block(title="", artist="Primary Artist", year=None),
            fake_block(title="Ape Title", artist="Ape Artist", album="Ape Album", year=2019),
        )

        tags = await TagExtractor(fake_probe).extract(path)

        assert tags.title == "Ape Title"
        assert tags.artist == "Primary Artist"
        assert tags.album == "Ape Album"
        assert tags.year == 2019
        assert len(tags.tag_blocks) == 2

    async def test_defaults_when_untagged(
        self, tmp_path: Path, fake_probe: Any, make_audio: Any
    ) -> None:
        path = make_audio(tmp_path / "01 Intro.FLAC", b"12345")

        tags = await TagExtractor(fake_probe).extract(path)

        assert tags.title == "01 Intro"
        assert tags.artist == "Unknown Artist"
        assert tags.album == "Unknown Album"
        assert tags.track_number is None
        assert tags.year is None
        assert tags.raw_artist is None
        assert tags.format == "flac"
        assert tags.size == 5
        assert tags.duration == 180
        assert tags.bitrate == 320

    async def test_missing_file_is_tag_read_error(
        self, tmp_path: Path, fake_probe: Any
    ) -> None:
        with pytest.raises(TagReadError):
            await TagExtractor(fake_probe).extract(tmp_path / "gone.mp3")

    async def test_probe_failure_propagates_as_metadata_error(
        self, tmp_path: Path, fake_probe: Any, make_audio: Any
    ) -> None:
        path = make_audio(tmp_path / "broken.flac")
        fake_probe.broken.add(path)

        with pytest.raises(MetadataError):
            await TagExtractor(fake_probe).extract(path)


class TestValueParsing:
    @pytest.mark.parametrize(
        ("raw", "expected"),
        [("3", 3), ("03/12", 3), ((7, 12), 7), (5, 5), ("A3", None), ("0", None), (None, None)],
    )
    def test_track_number(self, raw: Any, expected: int | None) -> None:
        assert parse_track_number(raw) == expected

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [("2020", 2020), ("2020-05-01", 2020), ("May 1999", 1999), ("n/a", None)],
    )
    def test_year(self, raw: str, expected: int | None) -> None:
        assert parse_year(raw) == expected


class TestMutagenAudioProbe:
    """Real container round trip through mutagen."""

    def test_untagged_wav_has_no_blocks(self, tmp_path: Path) -> None:
        path = _write_wav(tmp_path / "plain.wav")

        probed = MutagenAudioProbe().probe(path)

        assert probed.duration == 1
        assert probed.bitrate == 128
        assert probed.tag_blocks == []

    def test_id3_tagged_wav(self, tmp_path: Path) -> None:
        path = _write_wav(tmp_path / "tagged.wav", seconds=2)
        audio = WAVE(path)
        audio.add_tags()
        audio.tags.add(TIT2(encoding=3, text=["万有引力"]))
        audio.tags.add(TPE1(encoding=3, text=["汪苏泷"]))
        audio.tags.add(TALB(encoding=3, text=["Album"]))
        audio.tags.add(TRCK(encoding=3, text=["4/10"]))
        audio.tags.add(TDRC(encoding=3, text=["2015-03-01"]))
        audio.tags.add(USLT(encoding=3, lang="chi", desc="", text="[00:01]歌词"))
        audio.tags.add(
            APIC(encoding=3, mime="image/png", type=3, desc="cover", data=b"\x89PNGdata")
        )
        audio.save()

        tags = TagExtractor(MutagenAudioProbe()).extract_sync(path)

        assert tags.duration == 2
        assert tags.title == "万有引力"
        assert tags.artist == "汪苏泷"
        assert tags.album == "Album"
        assert tags.track_number == 4
        assert tags.year == 2015
        assert tags.format == "wav"
        block = tags.tag_blocks[0]
        assert block.kind == "id3"
        assert block.lyrics() == "[00:01]歌词"
        assert block.pictures()[0].mime == "image/png"
        assert block.pictures()[0].data == b"\x89PNGdata"

    def test_garbage_file_raises_tag_read_error(self, tmp_path: Path) -> None:
        path = tmp_path / "garbage.flac"
        path.write_bytes(b"this is not a flac stream at all")

        with pytest.raises(TagReadError):
            MutagenAudioProbe().probe(path)
