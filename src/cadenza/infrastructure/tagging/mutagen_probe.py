"""AudioProbe implementation backed by mutagen."""

import logging
from pathlib import Path

from mutagen import File as MutagenFile  # type: ignore[attr-defined]
from mutagen import MutagenError
from mutagen.apev2 import APENoHeaderError, APEv2

from cadenza.domain.exceptions import TagReadError
from cadenza.domain.ports import AudioProbe, ProbedAudio, TagBlock
from cadenza.infrastructure.tagging.blocks import ApeTagBlock, wrap_tags

logger = logging.getLogger(__name__)


class MutagenAudioProbe(AudioProbe):
    """Open audio containers with mutagen and expose their tag blocks.

    Hey future me - this is BLOCKING file IO. Never call probe() from the event loop
    directly, the TagExtractor pushes it through asyncio.to_thread().
    """

    def probe(self, path: Path) -> ProbedAudio:
        """Read duration, bitrate and every tag block of an audio file.

        Args:
            path: Audio file path

        Returns:
            ProbedAudio with blocks in container order (primary first)

        Raises:
            TagReadError: If mutagen can't parse the container
        """
        try:
            audio = MutagenFile(path)
        except (MutagenError, OSError) as e:
            raise TagReadError(path, str(e)) from e

        if audio is None:
            raise TagReadError(path, "unrecognized audio container")

        info = getattr(audio, "info", None)
        length = getattr(info, "length", 0) or 0
        raw_bitrate = getattr(info, "bitrate", 0) or 0

        blocks: list[TagBlock] = []
        primary = wrap_tags(audio.tags, getattr(audio, "pictures", None))
        if primary is not None:
            blocks.append(primary)
        elif getattr(audio, "pictures", None):
            # FLAC without a comment block can still carry pictures
            primary = wrap_tags({}, audio.pictures)
            if primary is not None:
                blocks.append(primary)

        ape = self._read_trailing_ape(path)
        if ape is not None:
            blocks.append(ape)

        return ProbedAudio(
            duration=int(length),
            bitrate=int(raw_bitrate // 1000) if raw_bitrate else None,
            tag_blocks=blocks,
        )

    # Listen up, mutagen.File() only surfaces the PRIMARY tag of an MP3 (ID3). Plenty of
    # old rips carry an APEv2 footer as well, sometimes with the only lyrics/cover in the file.
    # We read it separately and append it AFTER the primary block so ID3 values win.
    def _read_trailing_ape(self, path: Path) -> TagBlock | None:
        if path.suffix.lower() != ".mp3":
            return None
        try:
            return ApeTagBlock(APEv2(path))
        except APENoHeaderError:
            return None
        except (MutagenError, OSError) as e:
            logger.debug("Ignoring unreadable APEv2 footer in %s: %s", path, e)
            return None
