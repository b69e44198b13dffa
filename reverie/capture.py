"""
Media capture: one start/stop recording session at a time.

A MediaRecorder asks a MediaDevices backend for a stream, pumps the
stream's chunks into an in-memory list on a background task, and
finalizes them into a single Blob on stop().
"""

import asyncio
import logging
from typing import Callable, Optional

from .config import DEFAULT_TIME_SLICE_MS
from .errors import CaptureError
from .protocol import MediaDevices, MediaStream
from .types import FALLBACK_MIME_TYPE, Blob

logger = logging.getLogger(__name__)

# How long stop() waits for the stream to flush its last time slice
STOP_TIMEOUT = 5.0


class MediaRecorder:
    """
    Records audio or audio+video from a MediaDevices backend.

    Observers:
        on_data_available: called with every non-empty chunk, and once
            more with the final combined blob when recording stops
        on_start: called once recording is active
        on_stop: called after the final blob has been delivered
        on_error: called once with the CaptureError when starting or
            recording fails
    """

    def __init__(
        self,
        devices: MediaDevices,
        *,
        on_data_available: Callable[[Blob], None],
        on_start: Optional[Callable[[], None]] = None,
        on_stop: Optional[Callable[[], None]] = None,
        on_error: Optional[Callable[[Exception], None]] = None,
        time_slice_ms: int = DEFAULT_TIME_SLICE_MS,
        stop_timeout: float = STOP_TIMEOUT,
    ):
        self._devices = devices
        self._on_data_available = on_data_available
        self._on_start = on_start
        self._on_stop = on_stop
        self._on_error = on_error
        self._time_slice = time_slice_ms / 1000
        self._stop_timeout = stop_timeout
        self._stream: Optional[MediaStream] = None
        self._pump: Optional[asyncio.Task] = None
        self._chunks: list[bytes] = []
        self._mime_type = FALLBACK_MIME_TYPE
        self._starting = False

    @property
    def is_recording(self) -> bool:
        return self._stream is not None

    async def start_audio(self) -> None:
        await self._start(video=False)

    async def start_video(self) -> None:
        await self._start(video=True)

    async def _start(self, *, video: bool) -> None:
        label = "video" if video else "audio"
        # The device stream belongs to a single session
        if self._stream is not None or self._starting:
            raise CaptureError("A recording session is already active")

        self._starting = True
        try:
            stream = await self._devices.get_user_media(audio=True, video=video)
        except Exception as e:
            logger.error("Failed to start %s recording: %s", label, e)
            error = e if isinstance(e, CaptureError) else CaptureError(
                f"Failed to start {label} recording: {e}"
            )
            self._report(error)
            if error is e:
                raise
            raise error from e
        finally:
            self._starting = False

        self._stream = stream
        self._chunks = []
        self._mime_type = stream.mime_type or FALLBACK_MIME_TYPE
        self._pump = asyncio.create_task(self._record(stream))
        logger.info("Started %s recording (%s)", label, self._mime_type)
        if self._on_start is not None:
            self._on_start()

    async def _record(self, stream: MediaStream) -> None:
        try:
            async for chunk in stream.chunks(self._time_slice):
                if not chunk:
                    continue
                chunk = bytes(chunk)
                self._chunks.append(chunk)
                self._on_data_available(Blob(chunk, self._mime_type))
        except Exception as e:
            logger.error("Recording failed: %s", e)
            if self._stream is stream:
                self._release()
                self._pump = None
            self._report(CaptureError(f"Recording failed: {e}"))

    def _release(self) -> None:
        stream, self._stream = self._stream, None
        if stream is None:
            return
        for track in stream.tracks:
            track.stop()

    def _report(self, error: Exception) -> None:
        if self._on_error is not None:
            self._on_error(error)

    async def stop(self) -> Optional[Blob]:
        """
        Stop recording and deliver the final blob.

        Stopping the tracks ends the stream, which then yields whatever
        it still buffers; the pump is only cancelled if that takes longer
        than stop_timeout.

        No-op (returns None) when no session is active.
        """
        if self._stream is None:
            return None

        pump, self._pump = self._pump, None
        self._release()
        if pump is not None and not pump.done():
            done, _ = await asyncio.wait({pump}, timeout=self._stop_timeout)
            if not done:
                logger.warning("Stream did not end within %ss; dropping its tail", self._stop_timeout)
                pump.cancel()
                await asyncio.gather(pump, return_exceptions=True)

        final = Blob.concat(self._chunks, self._mime_type)
        logger.info("Stopped recording: %d chunks, %d bytes", len(self._chunks), final.size)
        self._on_data_available(final)
        if self._on_stop is not None:
            self._on_stop()
        return final

    def get_blob(self) -> Optional[Blob]:
        """Everything recorded so far, or None if nothing was recorded."""
        if not self._chunks:
            return None
        return Blob.concat(self._chunks, self._mime_type)

    def get_stream(self) -> Optional[MediaStream]:
        """The live stream, for previews."""
        return self._stream
