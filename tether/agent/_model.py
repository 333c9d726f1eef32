# -*- test-case-name: tether.agent.test.test_model -*-
# Copyright ClusterHQ Inc.  See LICENSE file for details.

"""
The agent's model of its own instance and of the candidate resources it
observes.
"""

from constantly import Names, NamedConstant
from pyrsistent import PClass, field

from ._logging import (
    VOLUME_ADOPTED, VOLUME_DETACHED,
    NETWORK_INTERFACE_ADOPTED, NETWORK_INTERFACE_DETACHED,
)


class _AttachableResource(PClass):
    """
    A provider resource which can be attached to at most one instance.

    :ivar unicode id: The provider's identifier for the resource.
    :ivar unicode attached_to: The identifier of the instance the resource is
        attached to, or the empty string if it is not attached.
    :ivar bool available: Whether the provider reports the resource as
        detached and eligible for attachment.
    :ivar unicode node_id: The node identity tag carried by the resource, or
        the empty string if it carries none.
    """
    id = field(type=str, mandatory=True)
    attached_to = field(type=str, initial=u"", mandatory=True)
    available = field(type=bool, initial=False, mandatory=True)
    node_id = field(type=str, initial=u"", mandatory=True)


class Volume(_AttachableResource):
    """
    A candidate EBS volume.
    """


class NetworkInterface(_AttachableResource):
    """
    A candidate secondary elastic network interface.
    """


def _resource_field(resource_type):
    """
    Create a ``PClass`` ``field`` to hold a believed-attached resource.
    """
    return field(
        type=(resource_type, type(None)), initial=None, mandatory=True,
        # Callers supply the right type; skip PClass.create coercion.
        factory=lambda x: x,
    )


class BeliefTransitions(Names):
    """
    The ways a belief about an attached resource can change during a refresh.
    """
    # A resource observed attached to this instance was adopted:
    ADOPTED = NamedConstant()
    # The believed-attached resource was observed available again:
    DETACHED = NamedConstant()


def _refresh_belief(instance_id, believed, observed):
    """
    Reconcile one belief against a fresh observation.

    Observations are scanned in the order the provider returned them and the
    first one which causes a transition ends the scan.

    :param unicode instance_id: The identifier of this instance.
    :param believed: The resource currently believed attached, or ``None``.
    :param observed: An iterable of freshly observed resources of the same
        kind.

    :return: A two-tuple of the new belief and the ``BeliefTransitions``
        constant describing the change, or ``None`` if nothing changed.
    """
    for resource in observed:
        if believed is None and resource.attached_to == instance_id:
            return resource, BeliefTransitions.ADOPTED
        if (believed is not None and believed.id == resource.id and
                resource.available):
            return None, BeliefTransitions.DETACHED
    return believed, None


class Instance(PClass):
    """
    The controller's own instance and its belief about what is attached to it.

    :ivar unicode id: The EC2 instance identifier.
    :ivar unicode region: The EC2 region the instance runs in.
    :ivar unicode availability_zone: The availability zone of the instance.
    :ivar unicode node_id: The node identity shared by the attached volume and
        network interface; the empty string until both are attached and
        agree.
    :ivar Volume volume: The volume believed attached, or ``None``.
    :ivar NetworkInterface network_interface: The network interface believed
        attached, or ``None``.
    """
    id = field(type=str, mandatory=True)
    region = field(type=str, mandatory=True)
    availability_zone = field(type=str, initial=u"", mandatory=True)
    node_id = field(type=str, initial=u"", mandatory=True)
    volume = _resource_field(Volume)
    network_interface = _resource_field(NetworkInterface)

    def refresh_volume_belief(self, volumes):
        """
        Update the volume belief from freshly observed volumes.

        :param volumes: The observed ``Volume`` instances, in provider order.

        :return: An updated ``Instance``.
        """
        volume, transition = _refresh_belief(self.id, self.volume, volumes)
        if transition is BeliefTransitions.ADOPTED:
            VOLUME_ADOPTED.log(
                instance_id=self.id, volume_id=volume.id,
                node_id=volume.node_id,
            )
        elif transition is BeliefTransitions.DETACHED:
            VOLUME_DETACHED.log(
                instance_id=self.id, volume_id=self.volume.id,
            )
        return self.set(volume=volume)

    def refresh_network_interface_belief(self, network_interfaces):
        """
        Update the network interface belief from freshly observed network
        interfaces.

        :param network_interfaces: The observed ``NetworkInterface``
            instances, in provider order.

        :return: An updated ``Instance``.
        """
        network_interface, transition = _refresh_belief(
            self.id, self.network_interface, network_interfaces)
        if transition is BeliefTransitions.ADOPTED:
            NETWORK_INTERFACE_ADOPTED.log(
                instance_id=self.id,
                network_interface_id=network_interface.id,
                node_id=network_interface.node_id,
            )
        elif transition is BeliefTransitions.DETACHED:
            NETWORK_INTERFACE_DETACHED.log(
                instance_id=self.id,
                network_interface_id=self.network_interface.id,
            )
        return self.set(network_interface=network_interface)
