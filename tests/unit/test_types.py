from matilda_relay.relay.types import Session, SessionMetadata, SessionState, TranscriptEvent, TranscriptWord


def test_transcript_event_wire_format():
    event = TranscriptEvent(
        text="hello world",
        session_id="abc-123",
        conversation_id="conv-1",
        confidence=0.93,
        is_final=True,
        words=(TranscriptWord(word="hello", start=0.0, end=0.4, confidence=0.9, punctuated_word="Hello"),),
        duration_seconds=1.5,
        start_offset_seconds=2.0,
        timestamp="2024-01-01T00:00:00Z",
    )

    assert event.to_dict() == {
        "sessionId": "abc-123",
        "conversationId": "conv-1",
        "transcript": "hello world",
        "confidence": 0.93,
        "is_final": True,
        "duration": 1.5,
        "start": 2.0,
        "channel": 0,
        "words": [{"word": "hello", "start": 0.0, "end": 0.4, "confidence": 0.9, "punctuated_word": "Hello"}],
        "timestamp": "2024-01-01T00:00:00Z",
    }


def test_timestamp_defaults_to_utc_iso():
    event = TranscriptEvent(text="x", session_id="s")

    assert event.timestamp.endswith("Z")
    assert "T" in event.timestamp


def test_transcript_word_from_dict_handles_speaker():
    word = TranscriptWord.from_dict({"word": "hi", "start": 1, "end": 2, "confidence": 0.5, "speaker": 1})

    assert word.speaker == 1
    assert word.to_dict()["speaker"] == 1
    assert "punctuated_word" not in word.to_dict()


def test_session_records_frames():
    session = Session.from_metadata("s-1", SessionMetadata(channel="general", connection_id="c-1"))

    session.record_frame(320)
    session.record_frame(160)

    summary = session.summary()
    assert summary["audio_chunks_received"] == 2
    assert summary["bytes_received"] == 480
    assert summary["connection_id"] == "c-1"
    assert summary["state"] == SessionState.CONNECTING.value
    assert session.age_seconds >= 0
