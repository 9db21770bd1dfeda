"""
Order Hub Console — New-order notification dispatcher

Three independent outputs per new order, each with its own fallback:
  1. Audio:   two-tone chime → pre-encoded WAV clip → single square beep.
              Runs as a background task after (2) and (3); a stage that
              hangs past AUDIO_STAGE_TIMEOUT_SECONDS counts as failed.
              Total failure is logged and swallowed.
  2. Desktop: OS notification when permission is granted; auto-closed after
              DESKTOP_NOTIFICATION_TIMEOUT_SECONDS, click focuses the console.
  3. Toast:   always shown; escalated to "urgent" when (2) could not be shown.

Browser capabilities (audio output, OS notifications, window focus) are
injected, so the console runs headless in tests.
"""
import asyncio
import io
import itertools
import logging
import math
import struct
import wave
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Callable, Protocol

from orderhub.core.config import get_settings
from orderhub.core.errors import AudioUnavailable, PermissionDenied

settings = get_settings()
logger = logging.getLogger(__name__)


# ── Audio ────────────────────────────────────────────────────
@dataclass(frozen=True)
class Tone:
    frequency_hz: float
    duration_s: float
    volume: float
    waveform: str = "sine"  # "sine" | "square"
    delay_s: float = 0.0    # silence before this tone


CHIME: tuple[Tone, ...] = (
    Tone(800, 0.4, 0.3),
    Tone(1000, 0.2, 0.21, delay_s=0.2),
)
FALLBACK_BEEP: tuple[Tone, ...] = (Tone(880, 0.3, 0.3, waveform="square"),)

WAV_SAMPLE_RATE = 8000


def render_wav(tones: tuple[Tone, ...], sample_rate: int = WAV_SAMPLE_RATE) -> bytes:
    """Encode tones as 16-bit mono PCM WAV bytes."""
    frames = bytearray()
    for tone in tones:
        frames += b"\x00\x00" * int(tone.delay_s * sample_rate)
        for n in range(int(tone.duration_s * sample_rate)):
            phase = math.sin(2 * math.pi * tone.frequency_hz * n / sample_rate)
            if tone.waveform == "square":
                phase = 1.0 if phase >= 0 else -1.0
            frames += struct.pack("<h", int(phase * tone.volume * 32767))
    buf = io.BytesIO()
    with wave.open(buf, "wb") as wav:
        wav.setnchannels(1)
        wav.setsampwidth(2)
        wav.setframerate(sample_rate)
        wav.writeframes(bytes(frames))
    return buf.getvalue()


CHIME_WAV = render_wav(CHIME)


class AudioOutput(Protocol):
    async def play_tones(self, tones: tuple[Tone, ...]) -> None: ...

    async def play_clip(self, wav_bytes: bytes) -> None: ...


# ── Desktop notifications ────────────────────────────────────
class PermissionState(str, Enum):
    DEFAULT = "default"
    GRANTED = "granted"
    DENIED = "denied"
    UNSUPPORTED = "unsupported"


class NotificationHandle(Protocol):
    def close(self) -> None: ...


class DesktopNotifier(Protocol):
    def permission(self) -> PermissionState: ...

    async def request_permission(self) -> PermissionState: ...

    def show(self, title: str, body: str, *, tag: str, on_click: Callable[[], None]) -> NotificationHandle: ...


NOTIFICATION_TITLE = "Novo Pedido Recebido!"
NOTIFICATION_TAG = "new-order"


def format_brl(amount) -> str:
    return f"{Decimal(str(amount)):.2f}".replace(".", ",")


def notification_body(order) -> str:
    return f"Pedido #{order.id} de {order.customer_name} - R$ {format_brl(order.total_amount)}"


# ── Toasts ───────────────────────────────────────────────────
TOAST_KINDS = ("info", "success", "error", "urgent")


@dataclass
class Toast:
    id: int
    kind: str
    message: str
    created_at: datetime = field(default_factory=lambda: datetime.now(tz=timezone.utc))


class ToastBoard:
    """In-app toasts; each one expires after `duration` seconds unless dismissed first."""

    def __init__(self, duration: float | None = None):
        self.duration = duration if duration is not None else settings.TOAST_DURATION_SECONDS
        self._ids = itertools.count(1)
        self._toasts: dict[int, Toast] = {}
        self._timers: dict[int, asyncio.TimerHandle] = {}

    @property
    def toasts(self) -> list[Toast]:
        return list(self._toasts.values())

    def show(self, message: str, kind: str = "info") -> Toast:
        if kind not in TOAST_KINDS:
            raise ValueError(f"Unknown toast kind: {kind}")
        toast = Toast(id=next(self._ids), kind=kind, message=message)
        self._toasts[toast.id] = toast
        self._timers[toast.id] = asyncio.get_running_loop().call_later(self.duration, self._expire, toast.id)
        return toast

    def dismiss(self, toast_id: int) -> bool:
        timer = self._timers.pop(toast_id, None)
        if timer is not None:
            timer.cancel()
        return self._toasts.pop(toast_id, None) is not None

    def _expire(self, toast_id: int) -> None:
        self._timers.pop(toast_id, None)
        self._toasts.pop(toast_id, None)

    def clear(self) -> None:
        for timer in self._timers.values():
            timer.cancel()
        self._timers.clear()
        self._toasts.clear()


# ── Dispatcher ───────────────────────────────────────────────
@dataclass
class NotificationReport:
    desktop_shown: bool
    toast: Toast
    audio: asyncio.Task  # resolves to "chime" | "clip" | "beep" | None


class NotificationDispatcher:
    def __init__(
        self,
        toasts: ToastBoard,
        audio: AudioOutput | None = None,
        notifier: DesktopNotifier | None = None,
        focus: Callable[[], None] | None = None,
        *,
        permission_delay: float | None = None,
        notification_timeout: float | None = None,
        audio_timeout: float | None = None,
    ):
        self.toasts = toasts
        self._audio = audio
        self._notifier = notifier
        self._focus = focus
        self._permission_delay = (
            permission_delay if permission_delay is not None else settings.NOTIFICATION_PERMISSION_DELAY_SECONDS
        )
        self._notification_timeout = (
            notification_timeout if notification_timeout is not None
            else settings.DESKTOP_NOTIFICATION_TIMEOUT_SECONDS
        )
        self._audio_timeout = audio_timeout if audio_timeout is not None else settings.AUDIO_STAGE_TIMEOUT_SECONDS
        self._permission_task: asyncio.Task | None = None
        self._permission_requested = False
        self._close_timers: list[asyncio.TimerHandle] = []
        self._audio_tasks: set[asyncio.Task] = set()

    def permission(self) -> PermissionState:
        if self._notifier is None:
            return PermissionState.UNSUPPORTED
        return PermissionState(self._notifier.permission())

    def start(self) -> None:
        """Schedule the one-time lazy permission request."""
        if self._permission_task is None and self.permission() is PermissionState.DEFAULT:
            self._permission_task = asyncio.create_task(self._request_permission_later())

    async def stop(self) -> None:
        pending = list(self._audio_tasks)
        if self._permission_task is not None:
            pending.append(self._permission_task)
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
        self._audio_tasks.clear()
        for timer in self._close_timers:
            timer.cancel()
        self._close_timers.clear()
        self.toasts.clear()

    async def _request_permission_later(self) -> None:
        await asyncio.sleep(self._permission_delay)
        if self._permission_requested or self.permission() is not PermissionState.DEFAULT:
            return
        self._permission_requested = True
        try:
            state = await self._notifier.request_permission()
            logger.info("Notification permission answered: %s", PermissionState(state).value)
        except Exception as exc:
            logger.warning("Notification permission request failed: %s", exc)

    async def play_alert(self) -> str | None:
        """Run the audio fallback chain; returns the stage that played, or None.

        A stage that does not finish within the stage timeout counts as failed.
        """
        if self._audio is None:
            logger.warning("%s: no audio output available", AudioUnavailable.kind)
            return None
        stages = (
            ("chime", lambda: self._audio.play_tones(CHIME)),
            ("clip", lambda: self._audio.play_clip(CHIME_WAV)),
            ("beep", lambda: self._audio.play_tones(FALLBACK_BEEP)),
        )
        for name, play in stages:
            try:
                await asyncio.wait_for(play(), timeout=self._audio_timeout)
                return name
            except asyncio.TimeoutError:
                logger.debug("Audio stage %s timed out after %.1fs", name, self._audio_timeout)
            except Exception as exc:
                logger.debug("Audio stage %s failed: %s", name, exc)
        logger.warning("%s: every audio fallback failed", AudioUnavailable.kind)
        return None

    def _show_desktop(self, order) -> None:
        state = self.permission()
        if state is not PermissionState.GRANTED:
            raise PermissionDenied(f"Notification permission is {state.value}")

        handle = self._notifier.show(
            NOTIFICATION_TITLE,
            notification_body(order),
            tag=NOTIFICATION_TAG,
            on_click=self._on_click,
        )
        timer = asyncio.get_running_loop().call_later(self._notification_timeout, handle.close)
        self._close_timers.append(timer)

    def _on_click(self) -> None:
        if self._focus is not None:
            self._focus()

    async def notify_new_order(self, order) -> NotificationReport:
        """Desktop notification and toast right away; the audio chain runs in the background."""
        desktop_shown = False
        try:
            self._show_desktop(order)
            desktop_shown = True
        except PermissionDenied as exc:
            logger.info("Desktop notification skipped: %s", exc)
        except Exception as exc:
            logger.warning("Desktop notification failed: %s", exc)

        message = f"Novo pedido #{order.id} recebido de {order.customer_name}"
        toast = self.toasts.show(message, kind="info" if desktop_shown else "urgent")

        audio = asyncio.create_task(self.play_alert())
        self._audio_tasks.add(audio)
        audio.add_done_callback(self._audio_tasks.discard)
        return NotificationReport(desktop_shown=desktop_shown, toast=toast, audio=audio)
