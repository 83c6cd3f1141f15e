# concierge/orla/ambient.py
"""
Ambient soundscape player.

Audio comes from the ``generate-ambient-sfx`` function as base64 and is
cached per ``mood-duration``. ``AudioHandle`` is the live playback element:
loop and volume changes apply to it in place and never restart playback.
"""
from __future__ import annotations

import base64
import binascii
import logging
from dataclasses import dataclass
from typing import Dict, Optional

from concierge.errors import FunctionInvokeError, ValidationError

log = logging.getLogger(__name__)

# mood id -> (label, category)
MOODS = {
    "luxury": ("Luxury", "luxury"),
    "classical": ("Classical", "luxury"),
    "piano": ("Solo Piano", "luxury"),
    "jazz": ("Jazz Lounge", "jazz"),
    "bossa": ("Bossa Nova", "jazz"),
    "lounge": ("Chill Lounge", "jazz"),
    "nature": ("Forest", "nature"),
    "ocean": ("Ocean", "nature"),
    "rain": ("Rain", "nature"),
    "fireplace": ("Fireplace", "nature"),
    "mediterranean": ("Mediterranean", "world"),
    "arabic": ("Arabian", "world"),
    "asian": ("Zen Garden", "world"),
    "cinematic": ("Cinematic", "modern"),
    "synthwave": ("Synthwave", "modern"),
    "minimal": ("Minimal", "modern"),
}
DURATIONS = (60, 120, 180, 300)  # seconds
DEFAULT_VOLUME = 0.5


def decode_audio(data: dict) -> bytes:
    """Pull the base64 audio out of a generate-ambient-sfx response."""
    encoded = data.get("audioContent") or data.get("audio") or ""
    if not encoded:
        raise FunctionInvokeError("generate-ambient-sfx", "no audio returned", payload={"keys": sorted(data)})
    try:
        return base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError) as e:
        raise FunctionInvokeError("generate-ambient-sfx", "audio was not valid base64") from e


@dataclass
class AudioHandle:
    """The live playback element."""

    mood: str
    data: bytes
    loop: bool = False
    volume: float = DEFAULT_VOLUME
    playing: bool = False
    position: float = 0.0
    starts: int = 0  # how many times playback began from the top

    def play(self) -> None:
        if not self.playing:
            if self.position == 0.0:
                self.starts += 1
            self.playing = True

    def pause(self) -> None:
        self.playing = False

    def advance(self, seconds: float, duration: float) -> None:
        """Move the playhead; at the end, wrap when looping or stop."""
        if not self.playing:
            return
        self.position += seconds
        if self.position >= duration:
            if self.loop:
                self.position %= duration
            else:
                self.position = 0.0
                self.playing = False


class AmbientPlayer:
    def __init__(self, client):
        self.client = client
        self._cache: Dict[str, bytes] = {}
        self.current: Optional[AudioHandle] = None
        self.loop = False
        self.volume = DEFAULT_VOLUME

    @staticmethod
    def cache_key(mood: str, duration: int) -> str:
        return f"{mood}-{duration}"

    def generate(self, mood: str, duration: int) -> bytes:
        if mood not in MOODS:
            raise ValidationError(f"Unknown mood: {mood}")
        if duration not in DURATIONS:
            raise ValidationError(f"Duration must be one of {', '.join(str(d) for d in DURATIONS)} seconds")
        key = self.cache_key(mood, duration)
        if key not in self._cache:
            self._cache[key] = decode_audio(self.client.generate_ambient_sfx(mood, duration))
            log.info("Generated ambient audio %s (%d bytes)", key, len(self._cache[key]))
        return self._cache[key]

    def play(self, mood: str, duration: int) -> AudioHandle:
        """Stop whatever is playing and start ``mood``. On failure the old handle keeps playing."""
        data = self.generate(mood, duration)
        if self.current is not None:
            self.current.pause()
        self.current = AudioHandle(mood=mood, data=data, loop=self.loop, volume=self.volume)
        self.current.play()
        return self.current

    def toggle_play(self) -> bool:
        if self.current is None:
            return False
        if self.current.playing:
            self.current.pause()
        else:
            self.current.play()
        return self.current.playing

    def toggle_loop(self) -> bool:
        self.loop = not self.loop
        if self.current is not None:
            self.current.loop = self.loop
        return self.loop

    def set_volume(self, volume: float) -> float:
        self.volume = max(0.0, min(1.0, float(volume)))
        if self.current is not None:
            self.current.volume = self.volume
        return self.volume

    def skip_to_next(self, duration: int) -> AudioHandle:
        moods = list(MOODS)
        current = self.current.mood if self.current else moods[-1]
        return self.play(moods[(moods.index(current) + 1) % len(moods)], duration)

    def stop(self) -> None:
        if self.current is not None:
            self.current.pause()
        self.current = None
