# -*- test-case-name: tether.agent.test.test_loop -*-
# Copyright ClusterHQ Inc.  See LICENSE file for details.

"""
Drive the attachment controller on a fixed interval.
"""

from eliot import write_traceback

from twisted.application.service import Service
from twisted.internet.task import LoopingCall

from ._logging import TICK_FAILED


DEFAULT_INTERVAL = 10.0


class ReconcileLoopService(Service):
    """
    Run ``AttachmentController.reconcile_once`` every ``interval`` seconds.

    Ticks run on the reactor thread, so one tick always finishes before the
    next begins.

    :ivar _reactor: A ``IReactorTime`` provider.
    :ivar controller: The ``AttachmentController`` to drive.
    :ivar float interval: Seconds between the start of consecutive ticks.
    :ivar _lc: The ``LoopingCall`` running the ticks while the service runs.
    """
    def __init__(self, reactor, controller, interval=DEFAULT_INTERVAL):
        self._reactor = reactor
        self.controller = controller
        self.interval = interval
        self._lc = None

    def startService(self):
        Service.startService(self)
        self._lc = LoopingCall(self._tick)
        self._lc.clock = self._reactor
        self._lc.start(self.interval, now=True)

    def stopService(self):
        Service.stopService(self)
        if self._lc is not None and self._lc.running:
            self._lc.stop()
        self._lc = None

    def _tick(self):
        # An exception escaping here would stop the LoopingCall for good.
        try:
            self.controller.reconcile_once()
        except Exception as e:
            TICK_FAILED.log(reason=str(e))
            write_traceback()
