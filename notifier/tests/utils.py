import json


class RecordingStream:
    """Stand-in for a response's ``send_body``; records every frame."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.frames: list[bytes] = []

    async def __call__(self, body: bytes, *, more_body: bool = False) -> None:
        if self.fail:
            raise OSError("broken pipe")
        self.frames.append(body)

    def events(self) -> list[dict]:
        return decode_frames(self.frames)


def decode_frames(frames) -> list[dict]:
    events = []
    for frame in frames:
        text = frame.decode("utf-8")
        assert text.startswith("data: ") and text.endswith("\n\n"), text
        events.append(json.loads(text[len("data: "):]))
    return events
