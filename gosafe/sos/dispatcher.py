"""SOS alert fan-out to the user's emergency contacts.

One attempt at a time: IDLE -> RESOLVING_LOCATION -> DISPATCHING ->
SUCCEEDED -> (display window) IDLE. Location failure degrades the alert
instead of blocking it. Each contact gets its own deep-link open, staggered
so the host does not treat them as a popup burst. There is no delivery
confirmation channel, so "succeeded" means every open was scheduled.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
import webbrowser
from dataclasses import replace
from typing import Callable, Optional, Sequence

from gosafe.auth.context import AuthContext
from gosafe.config import settings
from gosafe.errors import DispatchInProgress
from gosafe.sos.gate import MSG_SIGN_IN, can_dispatch
from gosafe.sos.message import compose_alert, deep_link
from gosafe.sos.scheduler import AsyncioScheduler, Scheduler
from gosafe.tracking.geostream import GeoOptions, GeoStream, sos_location_options
from gosafe.tracking.models import (
    Coordinate,
    EmergencyContact,
    GateDecision,
    Route,
    ScheduledSend,
    SOSAttempt,
    SOSStatus,
)

logger = logging.getLogger(__name__)

OpenExternal = Callable[[str], object]


class SOSDispatcher:
    def __init__(
            self,
            stream: Optional[GeoStream],
            scheduler: Optional[Scheduler] = None,
            open_external: OpenExternal = webbrowser.open_new_tab,
            options: GeoOptions | None = None,
            stagger_s: float | None = None,
            success_display_s: float | None = None,
    ):
        self.stream = stream
        self.scheduler = scheduler or AsyncioScheduler()
        self.open_external = open_external
        self.options = options or sos_location_options()
        self.stagger_s = settings.sos_stagger_s if stagger_s is None else stagger_s
        self.success_display_s = (
            settings.sos_success_display_s if success_display_s is None else success_display_s
        )
        self._attempt = SOSAttempt()
        self._attempt_ids = itertools.count(1)
        self._attempt_id = 0

    @property
    def attempt(self) -> SOSAttempt:
        return self._attempt

    @property
    def status(self) -> SOSStatus:
        return self._attempt.status

    async def dispatch(
            self,
            route: Route,
            origin_label: str,
            dest_label: str,
            contacts: Sequence[EmergencyContact],
            auth: AuthContext,
    ) -> SOSAttempt:
        if self._attempt.status.busy:
            logger.info("SOS already sending; ignoring new request")
            raise DispatchInProgress(self._attempt.status)

        decision = can_dispatch(auth.is_authenticated, contacts)
        if decision is GateDecision.BLOCKED_NO_AUTH:
            self._attempt = SOSAttempt(status=SOSStatus.FAILED, reason=MSG_SIGN_IN, gate=decision)
            return self._attempt
        if decision is GateDecision.BLOCKED_NO_CONTACTS:
            logger.info("SOS requested with no emergency contacts configured")
            return replace(self._attempt, gate=decision)

        self._attempt_id = next(self._attempt_ids)
        attempt_id = self._attempt_id
        contacts = list(contacts)
        logger.warning(f"🆘 SOS #{attempt_id} triggered for {len(contacts)} contact(s)")

        self._attempt = SOSAttempt(status=SOSStatus.RESOLVING_LOCATION)
        try:
            location = await self._resolve_location()
        except asyncio.CancelledError:
            logger.warning(f"SOS #{attempt_id} cancelled while resolving location")
            self._attempt = SOSAttempt(status=SOSStatus.FAILED, reason="cancelled")
            raise

        self._attempt = SOSAttempt(status=SOSStatus.DISPATCHING, resolved_location=location)
        try:
            message = compose_alert(location, origin_label or route.origin_label,
                                    dest_label or route.dest_label)
            sends = self._fan_out(contacts, message)
        except Exception as e:
            logger.error(f"SOS #{attempt_id} failed while dispatching: {e}", exc_info=True)
            self._attempt = SOSAttempt(
                status=SOSStatus.FAILED, resolved_location=location, reason=str(e)
            )
            return self._attempt

        self._attempt = SOSAttempt(
            status=SOSStatus.SUCCEEDED, resolved_location=location, sends=tuple(sends)
        )
        logger.info(f"SOS #{attempt_id} scheduled {len(sends)} alert(s)")
        self.scheduler.call_later(self.success_display_s, lambda: self._rearm(attempt_id))
        return self._attempt

    async def _resolve_location(self) -> Optional[Coordinate]:
        if self.stream is None:
            return None
        loop = asyncio.get_running_loop()
        fut: asyncio.Future = loop.create_future()

        def _ok(sample):
            if not fut.done():
                fut.set_result(sample.coordinate)

        def _err(error):
            if not fut.done():
                fut.set_exception(error)

        handle = None
        try:
            handle = self.stream.get_once(_ok, _err, self.options)
            return await asyncio.wait_for(fut, timeout=self.options.timeout_s)
        except asyncio.TimeoutError:
            logger.warning("SOS location timed out; sending without it")
        except Exception as e:
            logger.warning(f"SOS location unavailable ({e!r}); sending without it")
        finally:
            self.stream.stop(handle)
        return None

    def _fan_out(self, contacts: list[EmergencyContact], message: str) -> list[ScheduledSend]:
        sends = []
        for i, contact in enumerate(contacts):
            send = ScheduledSend(
                delay_s=i * self.stagger_s,
                contact_id=contact.id,
                url=deep_link(contact.phone_number, message),
            )
            self.scheduler.call_later(send.delay_s, lambda s=send: self._open(s))
            sends.append(send)
        return sends

    def _open(self, send: ScheduledSend):
        try:
            self.open_external(send.url)
        except Exception as e:
            # nothing to retry against; the other contacts still go out
            logger.error(f"Opening SOS link for contact {send.contact_id} failed: {e}")

    def _rearm(self, attempt_id: int):
        if attempt_id == self._attempt_id and self._attempt.status is SOSStatus.SUCCEEDED:
            self._attempt = SOSAttempt()
