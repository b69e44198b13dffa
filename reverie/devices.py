"""
Capture devices backed by PortAudio (via PyAudio).

Microphone-only: raw 16-bit mono PCM is buffered into chunks of
roughly ``time_slice`` seconds. PyAudio is an optional dependency,
installed with the ``audio`` extra.
"""

import asyncio
import logging
from typing import AsyncIterator, Optional

from .errors import CaptureError

logger = logging.getLogger(__name__)

DEFAULT_SAMPLE_RATE = 16000
DEFAULT_FRAMES_PER_BUFFER = 1024

# Poll the input buffer often enough that PortAudio never overflows
POLL_INTERVAL = 0.05


class PyAudioTrack:
    """Microphone track; stopping it closes the PortAudio stream."""

    kind = "audio"

    def __init__(self, pa, stream):
        self._pa = pa
        self._stream = stream
        self.stopped = False

    def stop(self) -> None:
        if self.stopped:
            return
        self.stopped = True
        try:
            self._stream.stop_stream()
            self._stream.close()
        finally:
            self._pa.terminate()


class PyAudioStream:
    """Live microphone stream."""

    def __init__(self, pa, stream, *, sample_rate: int = DEFAULT_SAMPLE_RATE):
        self._stream = stream
        self._sample_rate = sample_rate
        self._track = PyAudioTrack(pa, stream)

    @property
    def mime_type(self) -> str:
        return f"audio/L16;rate={self._sample_rate};channels=1"

    @property
    def tracks(self) -> list[PyAudioTrack]:
        return [self._track]

    def _drain(self) -> bytes:
        available = self._stream.get_read_available()
        if not available:
            return b""
        return self._stream.read(available, exception_on_overflow=False)

    async def chunks(self, time_slice: float) -> AsyncIterator[bytes]:
        loop = asyncio.get_running_loop()
        buffer = bytearray()
        deadline = loop.time() + time_slice
        while not self._track.stopped:
            await asyncio.sleep(min(POLL_INTERVAL, time_slice))
            if self._track.stopped:
                break
            buffer += self._drain()
            if loop.time() >= deadline:
                if buffer:
                    yield bytes(buffer)
                    buffer.clear()
                deadline = loop.time() + time_slice
        if buffer:
            yield bytes(buffer)


class PyAudioDevices:
    """MediaDevices implementation for the default input device."""

    def __init__(
        self,
        *,
        sample_rate: int = DEFAULT_SAMPLE_RATE,
        frames_per_buffer: int = DEFAULT_FRAMES_PER_BUFFER,
        device_index: Optional[int] = None,
    ):
        self._sample_rate = sample_rate
        self._frames_per_buffer = frames_per_buffer
        self._device_index = device_index

    async def get_user_media(self, *, audio: bool = True, video: bool = False) -> PyAudioStream:
        if video:
            raise CaptureError("Video capture is not supported by the PyAudio device backend")
        if not audio:
            raise CaptureError("No media kinds requested")
        try:
            import pyaudio
        except ImportError as e:
            raise CaptureError(
                "Audio capture requires PyAudio. Install with: pip install 'reverie-journal[audio]'"
            ) from e

        pa = pyaudio.PyAudio()
        kwargs = dict(
            format=pyaudio.paInt16,
            channels=1,
            rate=self._sample_rate,
            input=True,
            frames_per_buffer=self._frames_per_buffer,
        )
        if self._device_index is not None:
            kwargs["input_device_index"] = self._device_index
        try:
            stream = pa.open(**kwargs)
        except (OSError, ValueError) as e:
            pa.terminate()
            raise CaptureError(f"Could not open microphone: {e}") from e
        logger.debug("Opened microphone at %d Hz", self._sample_rate)
        return PyAudioStream(pa, stream, sample_rate=self._sample_rate)
