import base64

import pytest

from concierge.errors import FunctionInvokeError, ValidationError
from concierge.orla.ambient import AmbientPlayer, decode_audio
from concierge.orla.animation import (
    AvatarAnimator,
    SmoothedValue,
    detect_emotion,
    emotion_index,
    morph_targets,
)

AUDIO = base64.b64encode(b"ID3-fake-mp3").decode()


def test_smoothed_value():
    v = SmoothedValue(0.0, 1.0, rate=0.5)
    assert v.tick() == 0.5
    assert v.tick() == 0.75
    with pytest.raises(ValueError):
        SmoothedValue(rate=0)


def test_morph_targets():
    assert morph_targets("urgent") == morph_targets("neutral")
    assert morph_targets("concerned") == morph_targets("neutral")
    speaking = morph_targets("happy", speaking=True, audio_level=1.0)
    assert speaking["mouth_open"] == pytest.approx(0.7)
    assert speaking["smile"] == 0.6
    assert morph_targets("neutral", listening=True)["eyebrow_raise"] == pytest.approx(0.2)
    assert emotion_index("warm") == 4
    assert emotion_index("urgent") == 0


def test_detect_emotion():
    assert detect_emotion("That is wonderful news") == "happy"
    assert detect_emotion("Let me check the schedule") == "thinking"
    assert detect_emotion("I'm sorry for the delay") == "concerned"
    assert detect_emotion("Okay.") == "neutral"
    assert detect_emotion(None) == "neutral"


def test_animator_follows_audio_only_while_speaking():
    animator = AvatarAnimator(get_volume=lambda: 0.8, clock=lambda: 0.0)
    animator.set_speaking(True)
    frame = animator.tick(0.0)
    assert frame.audio_level == pytest.approx(0.2)
    assert frame.morphs["mouth_open"] > 0

    animator.set_listening(True)
    assert animator.speaking is False
    assert animator.tick(1.0).audio_level == 0.0


def test_animator_ignores_unknown_emotion():
    animator = AvatarAnimator(clock=lambda: 0.0)
    animator.set_emotion("furious", intensity="loud")
    assert animator.emotion == "neutral"
    assert animator.intensity == 1.0


def test_decode_audio_errors():
    with pytest.raises(FunctionInvokeError):
        decode_audio({})
    with pytest.raises(FunctionInvokeError):
        decode_audio({"audioContent": "***"})


def test_ambient_player_caches_and_keeps_playback(functions):
    functions.responses["generate-ambient-sfx"] = {"audioContent": AUDIO}
    player = AmbientPlayer(functions)

    handle = player.play("jazz", 120)
    player.generate("jazz", 120)
    assert len(functions.named("generate-ambient-sfx")) == 1
    assert handle.playing and handle.starts == 1

    player.toggle_loop()
    player.set_volume(2)
    assert handle.loop is True
    assert handle.volume == 1.0
    assert handle.starts == 1

    handle.advance(130, 120)
    assert handle.playing
    assert handle.position == pytest.approx(10)

    assert player.toggle_play() is False
    assert player.toggle_play() is True


def test_ambient_player_failure_keeps_old_handle(functions):
    functions.responses["generate-ambient-sfx"] = {"audioContent": AUDIO}
    player = AmbientPlayer(functions)
    old = player.play("rain", 60)

    functions.fail("generate-ambient-sfx", "quota exceeded")
    with pytest.raises(FunctionInvokeError):
        player.play("ocean", 60)
    assert player.current is old
    assert old.playing

    with pytest.raises(ValidationError):
        player.play("dubstep", 60)
    with pytest.raises(ValidationError):
        player.play("rain", 45)


def test_skip_wraps_around(functions):
    functions.responses["generate-ambient-sfx"] = {"audioContent": AUDIO}
    player = AmbientPlayer(functions)
    player.play("minimal", 60)
    assert player.skip_to_next(60).mood == "luxury"


def test_ambient_route(app, client, member, login, functions):
    functions.responses["generate-ambient-sfx"] = {"audioContent": AUDIO}
    login(member)
    r = client.post("/orla/ambient", json={"mood": "ocean", "duration": 60})
    assert r.status_code == 200
    assert r.mimetype == "audio/mpeg"
    assert r.data == b"ID3-fake-mp3"
    assert client.post("/orla/ambient", json={"mood": "ocean", "duration": "long"}).status_code == 400


def test_emotion_route(app, client, member, login):
    login(member)
    data = client.post("/orla/emotion", json={"text": "Thank you so much", "speaking": True}).get_json()
    assert data["emotion"] == "warm"
    assert data["emotion_index"] == 4
    assert data["frame"]["speaking"] is True
    # first frame of a fresh animator starts the idle loop at rest
    assert data["frame"]["head_rotation"] == [0.0, 0.0]


def test_voice_token(app, client, member, login, functions):
    login(member)
    functions.responses["elevenlabs-conversation-token"] = {"token": "ephemeral"}
    assert client.post("/orla/voice/token").get_json() == {"token": "ephemeral"}
    functions.responses["elevenlabs-conversation-token"] = {}
    assert client.post("/orla/voice/token").status_code == 502
