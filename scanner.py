"""
scanner.py
Simulated member identification (the check-in "scan").

A scan loads every registered member and picks one at random; the pick is
classified by membership end date and shown to the operator. Timers are
asyncio tasks owned by the controller:

- success -> verified after `verify_delay` seconds
- auto-scan repeats a scan every `auto_scan_interval` seconds while the
  camera is held

All store and camera failures end up as a status change plus a notification.
"""

from __future__ import annotations

import asyncio
import logging
import random
import threading
import time
from dataclasses import dataclass
from datetime import date
from typing import Callable, Protocol

from errors import CameraPermissionDenied, DeviceUnavailable, MemberStoreError
from models import Member, MembershipStatus, NoticeKind, ScanStatus
from utils import classify_membership

logger = logging.getLogger(__name__)

# States a new scan may start from
STARTABLE = (ScanStatus.IDLE, ScanStatus.ERROR, ScanStatus.VERIFIED)
RESETTABLE = (ScanStatus.SUCCESS, ScanStatus.ERROR, ScanStatus.VERIFIED)

DEFAULT_VERIFY_DELAY = 1.5
DEFAULT_AUTO_SCAN_INTERVAL = 5.0


class Notifier(Protocol):
    def notify(self, kind: NoticeKind, message: str) -> None: ...


class LogNotifier:
    def notify(self, kind: NoticeKind, message: str) -> None:
        logger.info("[%s] %s", kind.value, message)


@dataclass(frozen=True)
class ScanSnapshot:
    status: ScanStatus
    member: Member | None
    membership_status: MembershipStatus | None
    auto_scan_enabled: bool


class ScanController:
    def __init__(
        self,
        store,
        notifier: Notifier | None = None,
        camera=None,
        *,
        rng: random.Random | None = None,
        today: Callable[[], date] = date.today,
        verify_delay: float = DEFAULT_VERIFY_DELAY,
        auto_scan_interval: float = DEFAULT_AUTO_SCAN_INTERVAL,
    ):
        self.store = store
        self.notifier = notifier or LogNotifier()
        self.camera = camera
        self.rng = rng or random.Random()
        self.today = today
        self.verify_delay = verify_delay
        self.auto_scan_interval = auto_scan_interval

        self.status = ScanStatus.IDLE
        self.selected_member: Member | None = None
        self.membership_status: MembershipStatus | None = None
        self.auto_scan_enabled = False

        self._camera_handle = None
        self._acquiring_camera = False
        self._verify_task: asyncio.Task | None = None
        self._auto_task: asyncio.Task | None = None
        # bumped whenever in-flight results must be thrown away
        self._epoch = 0
        self._closed = False

    async def __aenter__(self) -> "ScanController":
        return self

    async def __aexit__(self, *exc) -> None:
        self.close()

    @property
    def camera_handle(self):
        return self._camera_handle

    @property
    def closed(self) -> bool:
        return self._closed

    def capture_still(self) -> bytes | None:
        """PNG frame from the held camera, or None when auto-scan is off."""
        if self._camera_handle is None:
            return None
        return self._camera_handle.capture_still()

    def snapshot(self) -> ScanSnapshot:
        return ScanSnapshot(self.status, self.selected_member, self.membership_status, self.auto_scan_enabled)

    # ---------- scanning ----------

    async def trigger_scan(self) -> bool:
        """
        Manual scan. Ignored while auto-scan is running or a scan is in
        progress. Returns True if the scan ran to a result.
        """
        if self.auto_scan_enabled:
            logger.debug("Manual scan ignored: auto-scan is on")
            return False
        return await self._scan()

    async def _scan(self) -> bool:
        if self._closed or self.status not in STARTABLE:
            logger.debug("Scan ignored in state %s", self.status.value)
            return False

        self._cancel_verify()
        self.status = ScanStatus.SCANNING
        self.selected_member = None
        self.membership_status = None
        epoch = self._epoch

        try:
            members = await asyncio.to_thread(self.store.fetch_all_members)
        except Exception as e:
            if epoch != self._epoch:
                return False
            if isinstance(e, MemberStoreError):
                logger.warning("Scan failed, could not load members: %s", e)
            else:
                logger.exception("Scan failed with an unexpected store error")
            self.status = ScanStatus.ERROR
            self.notifier.notify(NoticeKind.FETCH_FAILURE, "Could not load members. Please try again.")
            return True

        if epoch != self._epoch:
            logger.debug("Discarding scan result after reset")
            return False

        if not members:
            logger.info("Scan failed: no members registered")
            self.status = ScanStatus.ERROR
            self.notifier.notify(NoticeKind.EMPTY_SET, "No members are registered yet.")
            return True

        member = self.rng.choice(members)
        self.selected_member = member
        self.membership_status = classify_membership(member.end_date, self.today())
        self.status = ScanStatus.SUCCESS
        logger.info("Scan matched %s (%s)", member.id, self.membership_status.value)
        self.notifier.notify(NoticeKind.SCAN_SUCCESS, f"Welcome, {member.full_name}!")
        self._verify_task = asyncio.get_running_loop().create_task(self._verify_later())
        return True

    async def _verify_later(self) -> None:
        await asyncio.sleep(self.verify_delay)
        if self.status is ScanStatus.SUCCESS:
            self.status = ScanStatus.VERIFIED

    def _cancel_verify(self) -> None:
        if self._verify_task is not None:
            self._verify_task.cancel()
            self._verify_task = None

    def _clear(self) -> None:
        self._epoch += 1
        self._cancel_verify()
        self.status = ScanStatus.IDLE
        self.selected_member = None
        self.membership_status = None

    def reset(self) -> bool:
        """Back to idle from success/error/verified. No-op otherwise."""
        if self.status not in RESETTABLE:
            return False
        self._clear()
        return True

    # ---------- auto-scan ----------

    async def toggle_auto_scan(self) -> bool:
        """Start or stop auto-scan; returns whether it is on afterwards."""
        if self.auto_scan_enabled:
            self.stop_auto_scan()
            return False
        return await self.start_auto_scan()

    async def start_auto_scan(self) -> bool:
        if self.auto_scan_enabled:
            return True
        if self._closed or self._acquiring_camera:
            return False
        if self.camera is None:
            self.notifier.notify(NoticeKind.CAMERA_UNAVAILABLE, "No camera is configured.")
            return False

        self._acquiring_camera = True
        try:
            handle = await asyncio.to_thread(self.camera.request_camera_access)
        except CameraPermissionDenied as e:
            logger.warning("Camera access denied: %s", e)
            self.notifier.notify(
                NoticeKind.CAMERA_DENIED,
                "Camera access denied. Enable camera permissions to use auto-scan.",
            )
            return False
        except DeviceUnavailable as e:
            logger.warning("Camera unavailable: %s", e)
            self.notifier.notify(NoticeKind.CAMERA_UNAVAILABLE, f"Camera unavailable: {e}")
            return False
        finally:
            self._acquiring_camera = False

        if self._closed:
            self.camera.release_camera_access(handle)
            return False

        self._camera_handle = handle
        self.auto_scan_enabled = True
        self._auto_task = asyncio.get_running_loop().create_task(self._auto_scan_loop())
        logger.info("Auto-scan started (every %.1fs)", self.auto_scan_interval)
        return True

    async def _auto_scan_loop(self) -> None:
        while self.auto_scan_enabled:
            await self._scan()
            await asyncio.sleep(self.auto_scan_interval)

    def _release_camera(self) -> None:
        if self._camera_handle is not None:
            handle, self._camera_handle = self._camera_handle, None
            self.camera.release_camera_access(handle)

    def _stop_tasks(self) -> None:
        self.auto_scan_enabled = False
        if self._auto_task is not None:
            self._auto_task.cancel()
            self._auto_task = None
        self._release_camera()
        self._clear()

    def stop_auto_scan(self) -> None:
        """Cancel the repeat timer, release the camera, go idle."""
        if not self.auto_scan_enabled and self._auto_task is None:
            return
        self._stop_tasks()
        logger.info("Auto-scan stopped")

    def close(self) -> None:
        """Teardown: nothing scheduled by this controller runs afterwards."""
        self._closed = True
        self._stop_tasks()


class ControllerRegistry:
    """
    Controllers of live UI sessions. A session proves it is alive by
    calling `touch`; controllers not touched for `stale_after` seconds are
    closed by `reap`, which must run on the controllers' event loop.
    """

    def __init__(self, stale_after: float = 15.0, clock: Callable[[], float] = time.monotonic):
        self.stale_after = stale_after
        self.clock = clock
        self._last_seen: dict[ScanController, float] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._last_seen)

    def touch(self, controller: ScanController) -> None:
        with self._lock:
            self._last_seen[controller] = self.clock()

    def discard(self, controller: ScanController) -> None:
        with self._lock:
            self._last_seen.pop(controller, None)

    def reap(self) -> list[ScanController]:
        now = self.clock()
        with self._lock:
            stale = [c for c, seen in self._last_seen.items() if now - seen > self.stale_after]
            for c in stale:
                del self._last_seen[c]
        for c in stale:
            logger.info("Closing scan controller of a disconnected session")
            c.close()
        return stale

    async def watch(self, interval: float = 5.0) -> None:
        while True:
            await asyncio.sleep(interval)
            self.reap()
