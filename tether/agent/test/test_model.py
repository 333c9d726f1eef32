# Copyright ClusterHQ Inc.  See LICENSE file for details.

"""
Tests for ``tether.agent._model``.
"""

from eliot.testing import capture_logging, assertHasMessage

from hypothesis import given

from ...testtools import TestCase
from .._logging import (
    VOLUME_ADOPTED, VOLUME_DETACHED, NETWORK_INTERFACE_ADOPTED,
    NETWORK_INTERFACE_DETACHED,
)
from .._model import (
    Volume, NetworkInterface, BeliefTransitions, _refresh_belief,
)
from ..testtools import make_instance
from .strategies import THIS_INSTANCE, volumes


class RefreshBeliefTests(TestCase):
    """
    Tests for ``_refresh_belief``.
    """
    def test_adopt_first_attached(self):
        """
        With nothing believed attached, the first observed resource attached
        to the instance is adopted.
        """
        first = Volume(id=u"v1", attached_to=u"i-1", node_id=u"n1")
        second = Volume(id=u"v2", attached_to=u"i-1", node_id=u"n2")
        self.assertEqual(
            (first, BeliefTransitions.ADOPTED),
            _refresh_belief(u"i-1", None, [
                Volume(id=u"v0", attached_to=u"i-2"), first, second,
            ])
        )

    def test_ignore_others(self):
        """
        Resources attached to other instances or available are not adopted.
        """
        self.assertEqual(
            (None, None),
            _refresh_belief(u"i-1", None, [
                Volume(id=u"v0", attached_to=u"i-2"),
                Volume(id=u"v1", available=True),
            ])
        )

    def test_detach(self):
        """
        The believed-attached resource is cleared when it is observed
        available.
        """
        believed = Volume(id=u"v1", attached_to=u"i-1")
        self.assertEqual(
            (None, BeliefTransitions.DETACHED),
            _refresh_belief(u"i-1", believed, [
                Volume(id=u"v0", available=True),
                Volume(id=u"v1", available=True),
            ])
        )

    def test_keep_while_unavailable(self):
        """
        The believed-attached resource is kept while it is not observed
        available, even if it is missing or attached elsewhere.
        """
        believed = Volume(id=u"v1", attached_to=u"i-1")
        self.assertEqual(
            [(believed, None), (believed, None)],
            [_refresh_belief(u"i-1", believed, []),
             _refresh_belief(u"i-1", believed, [
                 Volume(id=u"v1", attached_to=u"i-2")])]
        )

    @given(observed=volumes())
    def test_adopted_is_attached_here(self, observed):
        """
        Whatever is adopted was observed attached to the instance.
        """
        adopted, transition = _refresh_belief(THIS_INSTANCE, None, observed)
        if transition is None:
            self.assertIs(None, adopted)
        else:
            self.assertEqual(THIS_INSTANCE, adopted.attached_to)


class InstanceTests(TestCase):
    """
    Tests for ``Instance`` belief refresh.
    """
    @capture_logging(
        assertHasMessage, VOLUME_ADOPTED,
        dict(instance_id=u"i-1", volume_id=u"v1", node_id=u"n1"),
    )
    def test_volume_adopted(self, logger):
        """
        ``Instance.refresh_volume_belief`` adopts a volume attached to it and
        logs the adoption.
        """
        volume = Volume(id=u"v1", attached_to=u"i-1", node_id=u"n1")
        instance = make_instance().refresh_volume_belief([volume])
        self.assertEqual(volume, instance.volume)

    @capture_logging(
        assertHasMessage, VOLUME_DETACHED,
        dict(instance_id=u"i-1", volume_id=u"v1"),
    )
    def test_volume_detached(self, logger):
        """
        ``Instance.refresh_volume_belief`` clears the volume belief when the
        volume is observed available and logs the detachment.
        """
        instance = make_instance(
            volume=Volume(id=u"v1", attached_to=u"i-1"))
        instance = instance.refresh_volume_belief(
            [Volume(id=u"v1", available=True)])
        self.assertIs(None, instance.volume)

    @capture_logging(
        assertHasMessage, NETWORK_INTERFACE_ADOPTED,
        dict(instance_id=u"i-1", network_interface_id=u"e1", node_id=u"n1"),
    )
    def test_network_interface_adopted(self, logger):
        """
        ``Instance.refresh_network_interface_belief`` adopts a network
        interface attached to it and logs the adoption.
        """
        network_interface = NetworkInterface(
            id=u"e1", attached_to=u"i-1", node_id=u"n1")
        instance = make_instance().refresh_network_interface_belief(
            [network_interface])
        self.assertEqual(network_interface, instance.network_interface)

    @capture_logging(
        assertHasMessage, NETWORK_INTERFACE_DETACHED,
        dict(instance_id=u"i-1", network_interface_id=u"e1"),
    )
    def test_network_interface_detached(self, logger):
        """
        ``Instance.refresh_network_interface_belief`` clears the network
        interface belief when it is observed available and logs the
        detachment.
        """
        instance = make_instance(
            network_interface=NetworkInterface(id=u"e1", attached_to=u"i-1"))
        instance = instance.refresh_network_interface_belief(
            [NetworkInterface(id=u"e1", available=True)])
        self.assertIs(None, instance.network_interface)

    @capture_logging(None)
    def test_unchanged(self, logger):
        """
        Refreshing against observations which change nothing returns an equal
        instance and logs nothing.
        """
        instance = make_instance(
            volume=Volume(id=u"v1", attached_to=u"i-1"))
        refreshed = instance.refresh_volume_belief(
            [Volume(id=u"v1", attached_to=u"i-1")])
        self.assertEqual((instance, []), (refreshed, logger.messages))
