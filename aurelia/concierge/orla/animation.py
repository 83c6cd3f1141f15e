# concierge/orla/animation.py
"""
Orla avatar animation state.

Each animated property is a ``SmoothedValue`` that low-pass filters toward a
target once per ``tick``. ``AvatarAnimator`` computes the targets from the
emotion / speaking / listening flags and the audio level, so any render loop
(3D, SVG or a test) can drive it by calling ``tick(now)`` once per frame.
"""
from __future__ import annotations

import math
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple

EMOTIONS = ("neutral", "happy", "thinking", "curious", "warm", "concerned", "urgent")

MORPHS = ("mouth_open", "smile", "eyebrow_raise", "eye_squint")

# emotion -> (mouth_open, smile, eyebrow_raise, eye_squint)
EMOTION_MORPHS: Dict[str, Tuple[float, float, float, float]] = {
    "neutral": (0.0, 0.1, 0.0, 0.0),
    "happy": (0.1, 0.6, 0.2, 0.3),
    "thinking": (0.0, 0.0, 0.4, 0.1),
    "curious": (0.05, 0.2, 0.5, 0.0),
    "warm": (0.05, 0.4, 0.1, 0.2),
}

# Index passed to the face shader
EMOTION_INDEX = {"happy": 1, "thinking": 2, "curious": 3, "warm": 4}

# Per-frame smoothing rates
MORPH_RATES = {"mouth_open": 0.15, "smile": 0.1, "eyebrow_raise": 0.1, "eye_squint": 0.1}
AUDIO_RATE = 0.25


def clamp(value: float, lo: float = 0.0, hi: float = 1.0) -> float:
    return max(lo, min(hi, value))


class SmoothedValue:
    """One exponentially smoothed property: ``current += (target - current) * rate``."""

    __slots__ = ("current", "target", "rate")

    def __init__(self, current: float = 0.0, target: Optional[float] = None, rate: float = 0.1):
        if not 0.0 < rate <= 1.0:
            raise ValueError("rate must be in (0, 1]")
        self.current = float(current)
        self.target = float(current if target is None else target)
        self.rate = rate

    def tick(self) -> float:
        self.current += (self.target - self.current) * self.rate
        return self.current

    def __repr__(self) -> str:
        return f"SmoothedValue(current={self.current:.4f}, target={self.target:.4f}, rate={self.rate})"


def morph_targets(emotion: str, speaking: bool = False, listening: bool = False,
                  audio_level: float = 0.0) -> Dict[str, float]:
    """Targets for one frame. Unknown emotions (and concerned/urgent) use neutral."""
    values = dict(zip(MORPHS, EMOTION_MORPHS.get(emotion, EMOTION_MORPHS["neutral"])))
    if speaking:
        values["mouth_open"] = 0.2 + clamp(audio_level) * 0.5
    if listening:
        values["eyebrow_raise"] += 0.2
    return values


def emotion_index(emotion: str) -> int:
    return EMOTION_INDEX.get(emotion, 0)


def idle_head_rotation(t: float) -> Tuple[float, float]:
    """(x, y) head rotation of the idle loop at wall-clock time ``t`` seconds."""
    return math.sin(t * 0.2) * 0.02, math.sin(t * 0.3) * 0.05


@dataclass
class AvatarFrame:
    morphs: Dict[str, float]
    audio_level: float
    emotion: str
    emotion_index: int
    head_rotation: Tuple[float, float]
    speaking: bool
    listening: bool

    def to_dict(self) -> dict:
        return {
            "morphs": {k: round(v, 4) for k, v in self.morphs.items()},
            "audio_level": round(self.audio_level, 4),
            "emotion": self.emotion,
            "emotion_index": self.emotion_index,
            "head_rotation": [round(self.head_rotation[0], 4), round(self.head_rotation[1], 4)],
            "speaking": self.speaking,
            "listening": self.listening,
        }


class AvatarAnimator:
    """
    Avatar state machine.

    Speaking and listening exclude each other. ``get_volume`` is the voice
    session's volume getter; without one (or while silent) the audio level
    decays to zero and only the idle loop moves the head.
    """

    def __init__(self, get_volume: Optional[Callable[[], float]] = None,
                 clock: Callable[[], float] = time.monotonic):
        self.get_volume = get_volume
        self._clock = clock
        self._start = clock()
        self.emotion = "neutral"
        self.intensity = 1.0
        self.speaking = False
        self.listening = False
        self.audio = SmoothedValue(0.0, rate=AUDIO_RATE)
        start = morph_targets("neutral")
        self.morphs = {name: SmoothedValue(start[name], rate=MORPH_RATES[name]) for name in MORPHS}

    # ---------- state ----------

    def set_emotion(self, emotion: str, intensity: float = 1.0) -> None:
        self.emotion = emotion if emotion in EMOTIONS else "neutral"
        try:
            self.intensity = clamp(float(intensity))
        except (TypeError, ValueError):
            self.intensity = 1.0

    def set_speaking(self, speaking: bool) -> None:
        self.speaking = bool(speaking)
        if self.speaking:
            self.listening = False

    def set_listening(self, listening: bool) -> None:
        self.listening = bool(listening)
        if self.listening:
            self.speaking = False

    # ---------- frame ----------

    def _sample_volume(self) -> float:
        if not self.speaking or self.get_volume is None:
            return 0.0
        try:
            return clamp(float(self.get_volume()))
        except (TypeError, ValueError):
            return 0.0

    def tick(self, now: Optional[float] = None) -> AvatarFrame:
        """Advance one frame."""
        now = self._clock() if now is None else now

        self.audio.target = self._sample_volume()
        if self.get_volume is None or not self.speaking:
            self.audio.current = 0.0
        level = self.audio.tick()

        targets = morph_targets(self.emotion, self.speaking, self.listening, level)
        if self.intensity < 1.0:
            neutral = morph_targets("neutral", self.speaking, self.listening, level)
            targets = {k: neutral[k] + (targets[k] - neutral[k]) * self.intensity for k in MORPHS}
        for name, value in targets.items():
            self.morphs[name].target = value
            self.morphs[name].tick()

        return AvatarFrame(
            morphs={k: v.current for k, v in self.morphs.items()},
            audio_level=level,
            emotion=self.emotion,
            emotion_index=emotion_index(self.emotion),
            head_rotation=idle_head_rotation(now - self._start),
            speaking=self.speaking,
            listening=self.listening,
        )


# ---------------------------------------------------------------------
# Keyword sentiment for Orla's replies
# ---------------------------------------------------------------------

_SENTIMENT_WORDS = (
    ("happy", (
        "wonderful", "excellent", "perfect", "delighted", "pleasure", "congratulations",
        "welcome", "excited", "fantastic", "amazing", "brilliant", "superb", "thrilled",
        "celebration", "celebrate", "success", "accomplished", "achieved", "won", "victory",
        "love", "beautiful", "gorgeous", "stunning", "magnificent", "exceptional",
    )),
    ("thinking", (
        "let me check", "considering", "analyzing", "looking into", "one moment", "processing",
        "let me see", "reviewing", "examining", "researching", "investigating", "evaluating",
        "calculating", "assessing", "verifying", "confirming", "cross-referencing",
        "searching", "finding", "locating", "checking availability", "moment please",
    )),
    ("curious", (
        "interesting", "tell me more", "how", "why", "what", "could you explain",
        "fascinating", "intriguing", "curious", "wondering", "exploring", "discover",
        "learn more", "elaborate", "details", "specifics", "preferences", "options",
        "would you like", "shall i", "may i suggest", "have you considered",
    )),
    ("warm", (
        "thank you", "appreciate", "grateful", "happy to help", "my pleasure", "of course",
        "certainly", "absolutely", "gladly", "honored", "privilege",
        "take care", "enjoy", "wishing you", "hope you", "looking forward", "pleasure serving",
        "at your service", "here for you", "assist you", "support you", "anything else",
    )),
    ("concerned", (
        "sorry", "apologize", "unfortunately", "regret", "unable to", "cannot", "issue",
        "problem", "concerned", "worry", "difficult", "challenge", "complication",
        "understand your frustration", "i see the issue", "let me fix", "troubleshoot",
        "inconvenience", "mistake", "error", "failed", "unsuccessful", "delayed",
    )),
    ("urgent", (
        "immediately", "urgent", "right away", "asap", "emergency", "critical",
        "time-sensitive", "priority", "now", "quickly", "hurry", "rush",
        "deadline", "expires", "limited time", "last minute", "don't wait",
        "act fast", "important update", "breaking", "alert", "attention required",
    )),
)


def detect_emotion(text: str) -> str:
    """First emotion (happy, thinking, curious, warm, concerned, urgent) whose phrases occur in ``text``."""
    lowered = (text or "").lower()
    for emotion, words in _SENTIMENT_WORDS:
        if any(w in lowered for w in words):
            return emotion
    return "neutral"
